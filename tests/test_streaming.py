"""Tests for chunk transform and pull readers."""

import binascii
import io

import pytest

from formwire.encoding import Encoding
from formwire.errors import PayloadIOError
from formwire.streaming import (
    DEFAULT_CHUNK_SIZE,
    AsyncBytesCursor,
    AsyncChainReader,
    ChunkTransform,
)
from tests.conftest import AsyncByteSource, ShortReadSource


async def drain(reader, size):
    out = []
    while True:
        data = await reader.read(size)
        if not data:
            break
        out.append(data)
    return b"".join(out)


class TestChunkSize:
    """Tests for buffer size selection."""

    def test_default_chunk_size(self):
        """Test the default read size is used when no hint is given."""
        transform = ChunkTransform(io.BytesIO(b""))
        assert transform.chunk_size == DEFAULT_CHUNK_SIZE

    def test_base64_rounds_up_to_multiple_of_three(self):
        """Test base64 read size is aligned to whole groups."""
        transform = ChunkTransform(io.BytesIO(b""), 8, Encoding.BASE64)
        assert transform.chunk_size == 9

    def test_quoted_printable_not_aligned(self):
        """Test quoted-printable keeps the requested size."""
        transform = ChunkTransform(io.BytesIO(b""), 8, Encoding.QUOTED_PRINTABLE)
        assert transform.chunk_size == 8

    @pytest.mark.parametrize("size", [0, -1])
    def test_non_positive_chunk_size_rejected(self, size):
        """Test zero or negative chunk sizes raise ValueError."""
        with pytest.raises(ValueError):
            ChunkTransform(io.BytesIO(b"x"), size)


class TestSyncIteration:
    """Tests for iter_chunks over synchronous sources."""

    def test_identity_chunks(self):
        """Test each read becomes one chunk."""
        transform = ChunkTransform(io.BytesIO(b"x" * 10), 4)
        assert list(transform) == [b"xxxx", b"xxxx", b"xx"]

    def test_empty_source(self):
        """Test an empty source yields no chunks."""
        assert list(ChunkTransform(io.BytesIO(b""), 4)) == []

    def test_base64_chunks_align(self, binary_payload):
        """Test no base64 chunk except the last splits a 4-symbol group."""
        chunks = list(ChunkTransform(io.BytesIO(binary_payload), 8, Encoding.BASE64))
        assert len(chunks) > 1
        assert all(len(chunk) % 4 == 0 for chunk in chunks[:-1])
        assert b"".join(chunks) == Encoding.BASE64.encode(binary_payload)

    def test_base64_short_reads_are_carried(self):
        """Test one-byte reads still produce correct base64."""
        data = b"0123456789"
        chunks = list(ChunkTransform(ShortReadSource(data, 1), 8, Encoding.BASE64))
        assert chunks == [b"MDEy", b"MzQ1", b"Njc4", b"OQ"]
        assert b"".join(chunks) == Encoding.BASE64.encode(data)

    def test_quoted_printable_chunks(self):
        """Test quoted-printable escapes bytes in every chunk."""
        chunks = list(ChunkTransform(io.BytesIO(b"\xe9\xe9\xe9\xe9"), 2, Encoding.QUOTED_PRINTABLE))
        assert chunks == [b"=E9=E9", b"=E9=E9"]

    def test_quoted_printable_lines_span_chunks(self):
        """Test line length is tracked across chunk boundaries."""
        data = b"\xe9" * 60 + b"plain text " * 20
        encoded = b"".join(ChunkTransform(io.BytesIO(data), 7, Encoding.QUOTED_PRINTABLE))
        assert all(len(line) <= 76 for line in encoded.split(b"\r\n"))
        assert b"\n" not in encoded.replace(b"\r\n", b"")
        assert binascii.a2b_qp(encoded) == data

    def test_async_source_rejected(self):
        """Test sync iteration over an async source raises TypeError."""
        transform = ChunkTransform(AsyncByteSource(b"data"), 4)
        with pytest.raises(TypeError):
            list(transform)

    def test_read_error_wrapped(self, mocker):
        """Test OSError from the source surfaces as PayloadIOError."""
        source = mocker.Mock()
        source.read.side_effect = OSError("disk failure")
        with pytest.raises(PayloadIOError, match="disk failure") as excinfo:
            list(ChunkTransform(source, 4))
        assert isinstance(excinfo.value.__cause__, OSError)

    def test_owned_source_closed_at_end(self):
        """Test close_after closes the source once exhausted."""
        source = io.BytesIO(b"abc")
        list(ChunkTransform(source, 2, close_after=True))
        assert source.closed

    def test_borrowed_source_left_open(self):
        """Test sources are not closed without close_after."""
        source = io.BytesIO(b"abc")
        list(ChunkTransform(source, 2))
        assert not source.closed


class TestAsyncIteration:
    """Tests for aiter_chunks."""

    @pytest.mark.asyncio
    async def test_async_source(self, binary_payload):
        """Test async sources are awaited on every read."""
        transform = ChunkTransform(AsyncByteSource(binary_payload), 64)
        chunks = [chunk async for chunk in transform]
        assert b"".join(chunks) == binary_payload
        assert all(len(chunk) == 64 for chunk in chunks[:-1])

    @pytest.mark.asyncio
    async def test_sync_source_in_async_iteration(self, binary_payload):
        """Test sync sources work with async iteration."""
        sync_chunks = list(ChunkTransform(io.BytesIO(binary_payload), 16, Encoding.BASE64))
        transform = ChunkTransform(io.BytesIO(binary_payload), 16, Encoding.BASE64)
        async_chunks = [chunk async for chunk in transform]
        assert async_chunks == sync_chunks

    @pytest.mark.asyncio
    async def test_async_short_reads_base64(self, binary_payload):
        """Test async short reads keep base64 groups whole."""
        transform = ChunkTransform(AsyncByteSource(binary_payload, step=5), 8, Encoding.BASE64)
        chunks = [chunk async for chunk in transform]
        assert all(len(chunk) % 4 == 0 for chunk in chunks[:-1])
        assert b"".join(chunks) == Encoding.BASE64.encode(binary_payload)

    @pytest.mark.asyncio
    async def test_owned_async_source_closed(self):
        """Test owned sources are closed after async iteration."""
        source = AsyncByteSource(b"abcdef")
        transform = ChunkTransform(source, 4, close_after=True)
        assert [chunk async for chunk in transform] == [b"abcd", b"ef"]
        assert source.closed

    @pytest.mark.asyncio
    async def test_read_error_wrapped(self, mocker):
        """Test OSError during async iteration surfaces as PayloadIOError."""
        source = mocker.Mock()
        source.read = mocker.AsyncMock(side_effect=OSError("socket reset"))
        with pytest.raises(PayloadIOError):
            [chunk async for chunk in ChunkTransform(source, 4)]


class TestPullRead:
    """Tests for read() and readinto()."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("read_size", [1, 5, 9, 4096])
    async def test_read_matches_push(self, binary_payload, read_size):
        """Test pulled bytes equal pushed chunks for any read size."""
        pushed = b"".join(ChunkTransform(io.BytesIO(binary_payload), 8, Encoding.BASE64))
        transform = ChunkTransform(io.BytesIO(binary_payload), 8, Encoding.BASE64)
        assert await drain(transform, read_size) == pushed

    @pytest.mark.asyncio
    async def test_read_never_exceeds_size(self):
        """Test read(n) returns at most n bytes."""
        transform = ChunkTransform(io.BytesIO(b"abcdefgh"), 8)
        assert await transform.read(3) == b"abc"
        assert await transform.read(3) == b"def"
        assert await transform.read(3) == b"gh"
        assert await transform.read(3) == b""

    @pytest.mark.asyncio
    async def test_read_all(self):
        """Test read() with no size drains the rest."""
        transform = ChunkTransform(io.BytesIO(b"abcdefgh"), 3)
        assert await transform.read(2) == b"ab"
        assert await transform.read() == b"cdefgh"
        assert await transform.read() == b""

    @pytest.mark.asyncio
    async def test_read_zero_leaves_stream_untouched(self, mocker):
        """Test read(0) returns nothing and does not pull from the source."""
        source = ShortReadSource(b"abcdef", 4)
        spy = mocker.spy(source, "read")
        transform = ChunkTransform(source, 4)
        assert await transform.read(0) == b""
        assert spy.call_count == 0
        assert await transform.read(2) == b"ab"

    @pytest.mark.asyncio
    async def test_readinto(self):
        """Test readinto fills a caller buffer."""
        transform = ChunkTransform(io.BytesIO(b"abcdef"), 4)
        buffer = bytearray(3)
        assert await transform.readinto(buffer) == 3
        assert bytes(buffer) == b"abc"
        assert await transform.readinto(buffer) == 1
        assert buffer[:1] == b"d"


class TestAsyncChainReader:
    """Tests for AsyncBytesCursor and AsyncChainReader."""

    @pytest.mark.asyncio
    async def test_cursor(self):
        """Test cursor reads slices then b''."""
        cursor = AsyncBytesCursor(b"hello")
        assert await cursor.read(2) == b"he"
        assert await cursor.read() == b"llo"
        assert await cursor.read(1) == b""

    @pytest.mark.asyncio
    async def test_chain_skips_empty_readers(self):
        """Test exhausted readers are skipped."""
        reader = AsyncChainReader(
            [AsyncBytesCursor(b"ab"), AsyncBytesCursor(b""), AsyncBytesCursor(b"cd")]
        )
        assert await reader.read(10) == b"ab"
        assert await reader.read(10) == b"cd"
        assert await reader.read(10) == b""

    @pytest.mark.asyncio
    async def test_chain_read_all(self):
        """Test read() concatenates everything."""
        reader = AsyncChainReader(
            [AsyncBytesCursor(b"ab"), ChunkTransform(io.BytesIO(b"cdef"), 1)]
        )
        assert await reader.read() == b"abcdef"

    @pytest.mark.asyncio
    async def test_chain_aiter_bytes(self):
        """Test async iteration yields reads of the given size."""
        reader = AsyncChainReader([AsyncBytesCursor(b"abcde")])
        assert [chunk async for chunk in reader.aiter_bytes(2)] == [b"ab", b"cd", b"e"]

    @pytest.mark.asyncio
    async def test_empty_chain(self):
        """Test a chain with no readers is immediately exhausted."""
        assert await AsyncChainReader([]).read(10) == b""

    @pytest.mark.asyncio
    async def test_closed_reader_raises(self):
        """Test reading after aclose raises RuntimeError."""
        reader = AsyncChainReader([AsyncBytesCursor(b"ab")])
        await reader.aclose()
        with pytest.raises(RuntimeError):
            await reader.read(1)

    @pytest.mark.asyncio
    async def test_aclose_closes_owned_sources(self):
        """Test closing the chain closes unread owned sources."""
        source = io.BytesIO(b"abc")
        async with AsyncChainReader([ChunkTransform(source, 2, close_after=True)]):
            pass
        assert source.closed
