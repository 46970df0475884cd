from formwire.encoding import Encoding
from formwire.errors import (
    FormwireError,
    PayloadIOError,
    InvalidContentType,
    PartConsumedError,
)
from formwire.part import Part
from formwire.multipart import Multipart, build_multipart, generate_boundary
from formwire.models import Request
from formwire.sources import AsyncFileSource, BytesPayload, StreamPayload
from formwire.streaming import (
    DEFAULT_CHUNK_SIZE,
    ChunkTransform,
    AsyncBytesCursor,
    AsyncChainReader,
)

__all__ = [
    "Encoding",
    "FormwireError",
    "PayloadIOError",
    "InvalidContentType",
    "PartConsumedError",
    "Part",
    "Multipart",
    "build_multipart",
    "generate_boundary",
    "Request",
    "AsyncFileSource",
    "BytesPayload",
    "StreamPayload",
    "DEFAULT_CHUNK_SIZE",
    "ChunkTransform",
    "AsyncBytesCursor",
    "AsyncChainReader",
]
