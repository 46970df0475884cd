from __future__ import annotations

import logging
import os
import re
import secrets
import string
from collections.abc import AsyncIterator, Callable, Iterator

from formwire.encoding import Encoding
from formwire.errors import PartConsumedError
from formwire.part import Part
from formwire.sources import ByteSource
from formwire.streaming import AsyncBytesCursor, AsyncChainReader

logger = logging.getLogger(__name__)

BOUNDARY_LENGTH = 30
DEFAULT_BUFFER_LIMIT = 1024 * 1024

_BOUNDARY_ALPHABET = string.ascii_letters + string.digits
# RFC 2046 bchars: 1-70 characters, not ending with a space.
_BOUNDARY_RE = re.compile(r"^[0-9A-Za-z'()+_,\-./:=? ]{0,69}[0-9A-Za-z'()+_,\-./:=?]$")


def generate_boundary(length: int = BOUNDARY_LENGTH) -> str:
    return "".join(secrets.choice(_BOUNDARY_ALPHABET) for _ in range(length))


def _validate_boundary(boundary: str) -> str:
    if not _BOUNDARY_RE.match(boundary):
        raise ValueError(f"Invalid multipart boundary: {boundary!r}")
    return boundary


def _validate_chunk_size(chunk_size: int | None) -> int | None:
    if chunk_size is not None and chunk_size <= 0:
        raise ValueError("chunk_size must be a positive integer")
    return chunk_size


class Multipart:
    """
    An ordered multipart/form-data body.

    Parts are written in insertion order, each preceded by `--boundary`
    and the whole closed by `--boundary--`. The body can be produced as
    bytes, as an async chunk stream, or as a pull reader; all three are
    byte-identical for the same chunk size. Producing any of them consumes
    the form.

    Args:
        boundary: Fixed boundary token (default: generated)
        boundary_factory: Callable producing a boundary when none is given
        chunk_size: Default read size for streamed payloads
    """

    def __init__(
        self,
        boundary: str | None = None,
        boundary_factory: Callable[[], str] = generate_boundary,
        chunk_size: int | None = None,
    ) -> None:
        self.boundary = _validate_boundary(boundary if boundary is not None else boundary_factory())
        self.chunk_size = _validate_chunk_size(chunk_size)
        self._parts: list[Part] = []
        self._consumed = False

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary}"

    @property
    def parts(self) -> tuple[Part, ...]:
        return tuple(self._parts)

    @property
    def consumed(self) -> bool:
        return self._consumed

    def add_part(self, part: Part) -> None:
        if self._consumed:
            raise PartConsumedError("Multipart body has already been rendered")
        self._parts.append(part)

    def add_text(self, name: str, value: str, encoding: Encoding | None = None) -> None:
        self.add_part(Part.text(name, value, encoding))

    def add_file(
        self,
        name: str,
        filename: str,
        data: bytes,
        content_type: str | None = None,
        encoding: Encoding | None = None,
    ) -> None:
        self.add_part(Part.file(name, filename, data, content_type, encoding))

    def add_source(
        self,
        name: str,
        filename: str,
        source: ByteSource,
        content_type: str | None = None,
        encoding: Encoding | None = None,
        length: int | None = None,
    ) -> None:
        self.add_part(Part.file_from_source(name, filename, source, content_type, encoding, length))

    async def add_file_from_path(
        self,
        name: str,
        path: str | os.PathLike[str],
        encoding: Encoding | None = None,
    ) -> None:
        if self._consumed:
            raise PartConsumedError("Multipart body has already been rendered")
        self.add_part(await Part.file_from_path(name, path, encoding))

    def size_hint(self) -> int | None:
        """
        Exact length of the rendered body, or None if any part's length is
        unknown.

        Raises:
            PartConsumedError: If the body has already been rendered
        """
        if self._consumed:
            raise PartConsumedError("Multipart body has already been rendered")
        if not self._parts:
            return 0
        blen = len(self.boundary.encode("ascii"))
        total = (blen + 4) + (len(self._parts) - 1) * (blen + 6) + (blen + 8)
        for part in self._parts:
            size = part.size_hint()
            if size is None:
                return None
            total += size
        return total

    def _take_parts(self) -> list[Part]:
        if self._consumed:
            raise PartConsumedError("Multipart body has already been rendered")
        self._consumed = True
        parts, self._parts = self._parts, []
        return parts

    def _chunk_size(self, chunk_size: int | None) -> int | None:
        if chunk_size is None:
            return self.chunk_size
        return _validate_chunk_size(chunk_size)

    def _frames(self) -> tuple[bytes, bytes, bytes]:
        b = self.boundary
        return (
            f"--{b}\r\n".encode("ascii"),
            f"\r\n--{b}\r\n".encode("ascii"),
            f"\r\n--{b}--\r\n".encode("ascii"),
        )

    def render_to_stream(self, chunk_size: int | None = None) -> AsyncIterator[bytes]:
        """
        Async iterator over the body.

        Yields the opening boundary, each part's chunks separated by
        boundary lines, then the closing boundary. A form with no parts
        yields nothing.
        """
        size = self._chunk_size(chunk_size)
        parts = self._take_parts()
        return self._stream(parts, size)

    async def _stream(self, parts: list[Part], chunk_size: int | None) -> AsyncIterator[bytes]:
        if not parts:
            return
        opening, separator, closing = self._frames()
        for index, part in enumerate(parts):
            yield opening if index == 0 else separator
            async for chunk in part.into_stream(chunk_size):
                yield chunk
        yield closing

    def iter_chunks(self, chunk_size: int | None = None) -> Iterator[bytes]:
        """Synchronous counterpart of render_to_stream() for synchronous sources."""
        size = self._chunk_size(chunk_size)
        parts = self._take_parts()
        return self._iter(parts, size)

    def _iter(self, parts: list[Part], chunk_size: int | None) -> Iterator[bytes]:
        if not parts:
            return
        opening, separator, closing = self._frames()
        for index, part in enumerate(parts):
            yield opening if index == 0 else separator
            yield from part.iter_chunks(chunk_size)
        yield closing

    def render_to_reader(self, chunk_size: int | None = None) -> AsyncChainReader:
        """Pull reader producing the same bytes as render_to_stream()."""
        size = self._chunk_size(chunk_size)
        parts = self._take_parts()
        if not parts:
            return AsyncChainReader([])
        opening, separator, closing = self._frames()
        readers = []
        for index, part in enumerate(parts):
            readers.append(AsyncBytesCursor(opening if index == 0 else separator))
            readers.append(part.into_reader(size))
        readers.append(AsyncBytesCursor(closing))
        return AsyncChainReader(readers)

    async def render_to_bytes(self, chunk_size: int | None = None) -> bytes:
        chunks = []
        async for chunk in self.render_to_stream(chunk_size):
            chunks.append(chunk)
        return b"".join(chunks)

    def to_bytes(self, chunk_size: int | None = None) -> bytes:
        return b"".join(self.iter_chunks(chunk_size))

    async def attach_to_request(
        self,
        request,
        chunk_size: int | None = None,
        buffer_limit: int = DEFAULT_BUFFER_LIMIT,
    ) -> None:
        """
        Set this form as the body of `request`.

        `request` needs set_body(), insert_header() and remove_header().
        Bodies of known size up to `buffer_limit` are rendered to bytes
        before the request is touched; larger or unsized bodies are attached
        as a pull reader. Content-Length is set only when the size is known.
        """
        size = self.size_hint()
        if size is not None and size <= buffer_limit:
            body = await self.render_to_bytes(chunk_size)
        else:
            body = self.render_to_reader(chunk_size)

        request.insert_header("Content-Type", self.content_type)
        if size is None:
            logger.debug("Body size unknown, dropping Content-Length")
            request.remove_header("Content-Length")
        else:
            request.insert_header("Content-Length", str(size))
        request.set_body(body)

    def __len__(self) -> int:
        return len(self._parts)

    def __repr__(self) -> str:
        return f"<Multipart boundary={self.boundary!r} parts={len(self._parts)}>"


def build_multipart(
    data: dict[str, str] | None,
    files: dict[str, bytes | tuple[str, bytes, str | None]],
) -> tuple[str, bytes]:
    """
    Build a multipart/form-data body.
    `files` values can be bytes or (filename, bytes, content_type|None).
    """
    form = Multipart()
    if data:
        for k, v in data.items():
            form.add_text(k, v)
    for field, val in files.items():
        if isinstance(val, bytes):
            form.add_file(field, field, val, "application/octet-stream")
        else:
            filename, content, ctype = val
            form.add_file(field, filename, content, ctype or "application/octet-stream")
    content_type = form.content_type
    return content_type, form.to_bytes()
