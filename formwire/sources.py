"""
Payload sources for multipart parts.

A part's payload is either an in-memory buffer or a readable byte source.
Sources expose a single `read(size)` which may return bytes directly
(files, io.BytesIO) or an awaitable of bytes (asyncio.StreamReader,
AsyncFileSource).
"""

from __future__ import annotations

import asyncio
import io
import logging
import mimetypes
import os
from collections.abc import Awaitable
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Protocol, Union

from formwire.errors import PayloadIOError

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class ByteSource(Protocol):
    def read(self, size: int = -1) -> bytes | Awaitable[bytes]: ...


@dataclass
class BytesPayload:
    """Payload already resolved into memory."""

    data: bytes

    @property
    def length(self) -> int:
        return len(self.data)

    def open(self) -> io.BytesIO:
        return io.BytesIO(self.data)


@dataclass
class StreamPayload:
    """Payload read from a byte source; `close_after` marks sources the part owns."""

    source: ByteSource
    length: int | None = None
    close_after: bool = False

    def open(self) -> ByteSource:
        return self.source


Payload = Union[BytesPayload, StreamPayload]


class AsyncFileSource:
    """
    Async wrapper over a blocking binary file.

    Reads run in a worker thread so the event loop is not blocked.
    """

    def __init__(self, fileobj: BinaryIO, length: int | None = None) -> None:
        self._file = fileobj
        self.length = length
        self.name = getattr(fileobj, "name", None)

    async def read(self, size: int = -1) -> bytes:
        return await asyncio.to_thread(self._file.read, size)

    def close(self) -> None:
        self._file.close()

    @property
    def closed(self) -> bool:
        return self._file.closed


def guess_filename(path: str | os.PathLike[str]) -> str:
    return Path(path).name or "file"


def guess_content_type(filename: str | os.PathLike[str] | None) -> str:
    """Guess a MIME type from a filename extension, defaulting to octet-stream."""
    if not filename:
        return DEFAULT_CONTENT_TYPE
    return mimetypes.guess_type(os.fspath(filename))[0] or DEFAULT_CONTENT_TYPE


async def open_path(path: str | os.PathLike[str]) -> AsyncFileSource:
    """
    Open a file for streaming without blocking the event loop.

    Raises:
        PayloadIOError: If the path cannot be opened
    """
    try:
        fileobj = await asyncio.to_thread(open, path, "rb")
    except OSError as exc:
        raise PayloadIOError(f"Cannot open {os.fspath(path)!r}: {exc}") from exc
    try:
        length = os.fstat(fileobj.fileno()).st_size
    except OSError:
        length = None
    logger.debug("Opened %s for streaming (%s bytes)", os.fspath(path), length)
    return AsyncFileSource(fileobj, length)
