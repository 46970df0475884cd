"""Pytest configuration and fixtures."""

import asyncio
import io

import pytest

from formwire.multipart import Multipart


class AsyncByteSource:
    """Async source over bytes, optionally capping every read at `step` bytes."""

    def __init__(self, data: bytes, step: int | None = None) -> None:
        self._buf = io.BytesIO(data)
        self._step = step
        self.closed = False

    async def read(self, size: int = -1) -> bytes:
        await asyncio.sleep(0)
        if self._step is not None:
            size = self._step if size < 0 else min(size, self._step)
        return self._buf.read(size)

    def close(self) -> None:
        self.closed = True


class ShortReadSource:
    """Sync source that never returns more than `step` bytes per read."""

    def __init__(self, data: bytes, step: int = 1) -> None:
        self._buf = io.BytesIO(data)
        self._step = step

    def read(self, size: int = -1) -> bytes:
        return self._buf.read(self._step)


@pytest.fixture
def binary_payload():
    """Payload whose length is not a multiple of 3."""
    return bytes(range(256)) * 4 + b"tail!"


@pytest.fixture
def form():
    """Multipart form with a fixed boundary."""
    return Multipart(boundary="test-boundary")


@pytest.fixture
def sample_file(tmp_path, binary_payload):
    """File on disk holding binary_payload."""
    path = tmp_path / "notes.txt"
    path.write_bytes(binary_payload)
    return path
