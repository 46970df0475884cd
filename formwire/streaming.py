from __future__ import annotations

import inspect
from collections.abc import AsyncIterator, Iterable, Iterator
from typing import Protocol

from .encoding import Encoding
from .errors import PayloadIOError
from .sources import ByteSource

DEFAULT_CHUNK_SIZE = 2048


class AsyncReader(Protocol):
    async def read(self, size: int = -1) -> bytes: ...


def _readinto(buffer: bytearray | memoryview, data: bytes) -> int:
    view = memoryview(buffer).cast("B")
    view[: len(data)] = data
    return len(data)


class ChunkTransform:
    """
    Reads a byte source in fixed-size buffers and encodes each buffer.

    The same read-encode cycle backs every exposure: aiter_chunks() and
    iter_chunks() push one encoded chunk per source read, read() and
    readinto() pull from an internal buffer refilled one cycle at a time.

    For base64 the buffer size is rounded up to a multiple of 3, and short
    reads are carried into the next cycle, so no chunk except the last one
    ends inside a base64 group.
    """

    def __init__(
        self,
        source: ByteSource,
        chunk_size: int | None = None,
        encoding: Encoding | None = None,
        close_after: bool = False,
    ) -> None:
        size = DEFAULT_CHUNK_SIZE if chunk_size is None else chunk_size
        if size <= 0:
            raise ValueError("chunk_size must be a positive integer")
        self.chunk_size = encoding.align(size) if encoding else size
        self.encoding = encoding
        self._source = source
        self._close_after = close_after
        self._carry = b""
        self._column = 0
        self._eof = False
        self._closed = False
        self._buffer = b""
        self._offset = 0

    def _encode(self, data: bytes) -> bytes:
        if self.encoding is None:
            return data
        group = self.encoding.group_size
        if group > 1:
            data = self._carry + data
            cut = len(data) - len(data) % group
            data, self._carry = data[:cut], data[cut:]
            if not data:
                return b""
        chunk, self._column = self.encoding.encode_continued(data, self._column)
        return chunk

    def _finish(self) -> bytes | None:
        self._eof = True
        tail, self._carry = self._carry, b""
        if tail and self.encoding is not None:
            return self.encoding.encode_continued(tail, self._column)[0]
        return None

    async def _read_source(self) -> bytes:
        try:
            data = self._source.read(self.chunk_size)
            if inspect.isawaitable(data):
                data = await data
        except OSError as exc:
            raise PayloadIOError(f"Failed to read payload: {exc}") from exc
        return data

    def _read_source_sync(self) -> bytes:
        try:
            data = self._source.read(self.chunk_size)
        except OSError as exc:
            raise PayloadIOError(f"Failed to read payload: {exc}") from exc
        if inspect.isawaitable(data):
            if inspect.iscoroutine(data):
                data.close()
            raise TypeError("Source is asynchronous; use aiter_chunks() instead")
        return data

    async def next_chunk(self) -> bytes | None:
        """Run read-encode cycles until a non-empty chunk is produced; None at end."""
        while not self._eof:
            data = await self._read_source()
            if not data:
                tail = self._finish()
                await self.aclose()
                return tail
            chunk = self._encode(data)
            if chunk:
                return chunk
        return None

    def next_chunk_sync(self) -> bytes | None:
        while not self._eof:
            data = self._read_source_sync()
            if not data:
                tail = self._finish()
                self.close()
                return tail
            chunk = self._encode(data)
            if chunk:
                return chunk
        return None

    async def aiter_chunks(self) -> AsyncIterator[bytes]:
        """Async iterate over encoded chunks."""
        try:
            while True:
                chunk = await self.next_chunk()
                if chunk is None:
                    break
                yield chunk
        finally:
            await self.aclose()

    def iter_chunks(self) -> Iterator[bytes]:
        """Iterate over encoded chunks of a synchronous source."""
        try:
            while True:
                chunk = self.next_chunk_sync()
                if chunk is None:
                    break
                yield chunk
        finally:
            self.close()

    async def read(self, size: int = -1) -> bytes:
        """
        Read up to `size` encoded bytes; all remaining bytes when size < 0.

        Returns b"" once the source is exhausted.
        """
        if size < 0:
            parts = [self._buffer[self._offset:]]
            self._buffer, self._offset = b"", 0
            while True:
                chunk = await self.next_chunk()
                if chunk is None:
                    break
                parts.append(chunk)
            return b"".join(parts)

        if size == 0:
            return b""
        if self._offset >= len(self._buffer):
            chunk = await self.next_chunk()
            if chunk is None:
                return b""
            self._buffer, self._offset = chunk, 0

        end = self._offset + size
        out = self._buffer[self._offset:end]
        self._offset += len(out)
        return out

    async def readinto(self, buffer: bytearray | memoryview) -> int:
        return _readinto(buffer, await self.read(len(buffer)))

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._close_after:
            close = getattr(self._source, "close", None)
            if close is not None:
                result = close()
                if inspect.isawaitable(result):
                    await result

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._close_after:
            close = getattr(self._source, "close", None)
            if close is not None:
                result = close()
                if inspect.iscoroutine(result):
                    result.close()
                    raise TypeError("Source is asynchronous; use aclose() instead")

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self.aiter_chunks()

    def __iter__(self) -> Iterator[bytes]:
        return self.iter_chunks()

    def __repr__(self) -> str:
        name = self.encoding.wire_name if self.encoding else "identity"
        return f"<ChunkTransform {name} chunk_size={self.chunk_size}>"


class AsyncBytesCursor:
    """Pull reader over a fixed byte string."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._offset = 0

    async def read(self, size: int = -1) -> bytes:
        if size < 0:
            end = len(self._data)
        else:
            end = self._offset + size
        out = self._data[self._offset:end]
        self._offset += len(out)
        return out

    async def readinto(self, buffer: bytearray | memoryview) -> int:
        return _readinto(buffer, await self.read(len(buffer)))


class AsyncChainReader:
    """
    Concatenates pull readers into one.

    Each read() is served from the current reader; a reader that returns
    b"" is dropped and the next one is tried.
    """

    def __init__(self, readers: Iterable[AsyncReader]) -> None:
        self._readers = list(readers)
        self._index = 0
        self._closed = False

    async def read(self, size: int = -1) -> bytes:
        if self._closed:
            raise RuntimeError("Reader has been closed")
        if size < 0:
            parts = []
            while True:
                data = await self.read(DEFAULT_CHUNK_SIZE)
                if not data:
                    break
                parts.append(data)
            return b"".join(parts)
        if size == 0:
            return b""

        while self._index < len(self._readers):
            data = await self._readers[self._index].read(size)
            if data:
                return data
            self._index += 1
        return b""

    async def readinto(self, buffer: bytearray | memoryview) -> int:
        return _readinto(buffer, await self.read(len(buffer)))

    async def aiter_bytes(self, chunk_size: int | None = None) -> AsyncIterator[bytes]:
        """Async iterate over the concatenated bytes in reads of `chunk_size`."""
        size = chunk_size or DEFAULT_CHUNK_SIZE
        while True:
            data = await self.read(size)
            if not data:
                break
            yield data

    async def aclose(self) -> None:
        """Close readers that were not read to the end."""
        if self._closed:
            return
        self._closed = True
        for reader in self._readers[self._index:]:
            aclose = getattr(reader, "aclose", None)
            if aclose is not None:
                await aclose()

    async def __aenter__(self) -> AsyncChainReader:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self.aiter_bytes()
