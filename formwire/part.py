from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator, Iterator

from formwire.encoding import Encoding
from formwire.errors import PartConsumedError
from formwire.headers import escape_param, validate_content_type
from formwire.sources import (
    ByteSource,
    BytesPayload,
    Payload,
    StreamPayload,
    guess_content_type,
    guess_filename,
    open_path,
)
from formwire.streaming import AsyncBytesCursor, AsyncChainReader, ChunkTransform

logger = logging.getLogger(__name__)

TEXT_CONTENT_TYPE = "text/plain"

_DISPOSITION = b'Content-Disposition: form-data; name="'
_FILENAME = b'; filename="'
_CONTENT_TYPE = b"Content-Type: "
_TRANSFER_ENCODING = b"Content-Transfer-Encoding: "
_CRLF = b"\r\n"


def _param_len(value: str) -> int:
    # escape_param turns each of these single bytes into a 3-byte %XX.
    escaped = value.count('"') + value.count("\r") + value.count("\n")
    return len(value.encode("utf-8")) + 2 * escaped


class Part:
    """
    One field of a multipart/form-data body.

    A part without a filename is a text field; a part with one is a file
    field. Rendering consumes the payload, so each part renders once.
    """

    def __init__(
        self,
        name: str,
        payload: Payload,
        content_type: str = TEXT_CONTENT_TYPE,
        filename: str | None = None,
        encoding: Encoding | None = None,
    ) -> None:
        self.name = name
        self.content_type = validate_content_type(content_type)
        self.filename = filename
        self.encoding = encoding
        self._payload: Payload | None = payload
        self._payload_length = payload.length

    @classmethod
    def text(cls, name: str, value: str, encoding: Encoding | None = None) -> Part:
        return cls(name, BytesPayload(value.encode("utf-8")), TEXT_CONTENT_TYPE, None, encoding)

    @classmethod
    def file(
        cls,
        name: str,
        filename: str,
        data: bytes,
        content_type: str | None = None,
        encoding: Encoding | None = None,
    ) -> Part:
        """
        File field from in-memory bytes.

        Args:
            name: Form field name
            filename: Filename reported to the server
            data: File content
            content_type: MIME type (default: guessed from filename)
            encoding: Optional Content-Transfer-Encoding
        """
        ctype = content_type or guess_content_type(filename)
        return cls(name, BytesPayload(bytes(data)), ctype, filename, encoding)

    @classmethod
    def file_from_source(
        cls,
        name: str,
        filename: str,
        source: ByteSource,
        content_type: str | None = None,
        encoding: Encoding | None = None,
        length: int | None = None,
    ) -> Part:
        """
        File field streamed from a readable byte source.

        `source.read(n)` may be synchronous or a coroutine. Pass `length`
        (raw bytes) when known so the part can report a size hint.
        """
        ctype = content_type or guess_content_type(filename)
        return cls(name, StreamPayload(source, length), ctype, filename, encoding)

    @classmethod
    async def file_from_path(
        cls,
        name: str,
        path: str | os.PathLike[str],
        encoding: Encoding | None = None,
    ) -> Part:
        """
        File field streamed from disk.

        The filename and content type are derived from the path. The part
        owns the opened file and closes it once rendered.

        Raises:
            PayloadIOError: If the file cannot be opened
        """
        source = await open_path(path)
        filename = guess_filename(path)
        content_type = guess_content_type(filename)
        logger.debug("Part %r: streaming %s as %s", name, filename, content_type)
        payload = StreamPayload(source, source.length, close_after=True)
        return cls(name, payload, content_type, filename, encoding)

    @property
    def is_file(self) -> bool:
        return self.filename is not None

    @property
    def consumed(self) -> bool:
        return self._payload is None

    @property
    def header_len(self) -> int:
        size = len(_DISPOSITION) + _param_len(self.name) + 1
        if self.filename is not None:
            size += len(_FILENAME) + _param_len(self.filename) + 1
        size += len(_CRLF)
        size += len(_CONTENT_TYPE) + len(self.content_type.encode("utf-8")) + len(_CRLF)
        if self.encoding is not None:
            size += len(_TRANSFER_ENCODING) + len(self.encoding.wire_name) + len(_CRLF)
        return size + len(_CRLF)

    def header_bytes(self) -> bytes:
        out = [_DISPOSITION, escape_param(self.name).encode("utf-8"), b'"']
        if self.filename is not None:
            out += [_FILENAME, escape_param(self.filename).encode("utf-8"), b'"']
        out += [_CRLF, _CONTENT_TYPE, self.content_type.encode("utf-8"), _CRLF]
        if self.encoding is not None:
            out += [_TRANSFER_ENCODING, self.encoding.wire_name.encode("ascii"), _CRLF]
        out.append(_CRLF)
        return b"".join(out)

    def size_hint(self) -> int | None:
        """Exact rendered length (headers + encoded payload), or None if unknown."""
        if self._payload_length is None:
            return None
        body = self._payload_length
        if self.encoding is not None:
            body = self.encoding.encoded_length(body)
            if body is None:
                return None
        return self.header_len + body

    def _take_transform(self, chunk_size: int | None) -> ChunkTransform:
        if self._payload is None:
            raise PartConsumedError(f"Part {self.name!r} has already been rendered")
        payload, self._payload = self._payload, None
        if isinstance(payload, BytesPayload):
            return ChunkTransform(payload.open(), chunk_size, self.encoding)
        return ChunkTransform(
            payload.source, chunk_size, self.encoding, close_after=payload.close_after
        )

    def into_stream(self, chunk_size: int | None = None) -> AsyncIterator[bytes]:
        """Async iterator yielding the header block, then encoded payload chunks."""
        transform = self._take_transform(chunk_size)
        return _stream_part(self.header_bytes(), transform)

    def iter_chunks(self, chunk_size: int | None = None) -> Iterator[bytes]:
        """Synchronous counterpart of into_stream() for synchronous sources."""
        transform = self._take_transform(chunk_size)
        return _iter_part(self.header_bytes(), transform)

    def into_reader(self, chunk_size: int | None = None) -> AsyncChainReader:
        """Pull reader producing the same bytes as into_stream()."""
        transform = self._take_transform(chunk_size)
        return AsyncChainReader([AsyncBytesCursor(self.header_bytes()), transform])

    def __repr__(self) -> str:
        kind = "file" if self.is_file else "text"
        return f"<Part {kind} name={self.name!r} content_type={self.content_type!r}>"


async def _stream_part(header: bytes, transform: ChunkTransform) -> AsyncIterator[bytes]:
    try:
        yield header
        async for chunk in transform:
            yield chunk
    finally:
        await transform.aclose()


def _iter_part(header: bytes, transform: ChunkTransform) -> Iterator[bytes]:
    try:
        yield header
        yield from transform
    finally:
        transform.close()
