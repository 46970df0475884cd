from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from formwire.headers import _sanitize_header
from formwire.streaming import AsyncChainReader

if TYPE_CHECKING:
    from formwire.multipart import Multipart


class Request:
    """
    Lightweight outgoing HTTP request that preserves header order while
    exposing convenient helpers.
    """

    def __init__(
        self,
        method: str,
        url: str,
        headers: Iterable[tuple[str, str]] = (),
        body: bytes | AsyncChainReader | None = None,
    ) -> None:
        self.method = method.upper()
        self.url = url
        self.raw_headers: list[tuple[str, str]] = []
        for name, value in headers:
            self.insert_header(name, value)
        self.body = body

    @property
    def headers(self) -> dict[str, str]:
        # Last-write wins while keeping access case-insensitive for callers.
        out: dict[str, str] = {}
        for name, value in self.raw_headers:
            out[name.lower()] = value
        return out

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    def insert_header(self, name: str, value: str) -> None:
        """Set a header, replacing any existing value in place."""
        name, value = _sanitize_header(name, value)
        key = name.lower()
        for index, (existing, _) in enumerate(self.raw_headers):
            if existing.lower() == key:
                self.raw_headers[index] = (name, value)
                self.raw_headers = [
                    h for i, h in enumerate(self.raw_headers)
                    if i <= index or h[0].lower() != key
                ]
                return
        self.raw_headers.append((name, value))

    def remove_header(self, name: str) -> None:
        key = name.lower()
        self.raw_headers = [h for h in self.raw_headers if h[0].lower() != key]

    def set_body(self, body: bytes | AsyncChainReader | None) -> None:
        self.body = body

    async def read_body(self) -> bytes:
        """Return the body as bytes, draining a streamed body if needed."""
        if self.body is None:
            return b""
        if isinstance(self.body, bytes):
            return self.body
        return await self.body.read()

    async def set_multipart(self, multipart: Multipart, chunk_size: int | None = None) -> None:
        await multipart.attach_to_request(self, chunk_size)

    def __repr__(self) -> str:
        return f"<Request [{self.method}] {self.url}>"
