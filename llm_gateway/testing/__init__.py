"""Testing utilities for in-process gateway simulations."""

from ..core.sink import RecordingSink
from .fake_upstream import (
    FailingByteStream,
    FakeUpstream,
    UpstreamResponse,
    build_native_response,
    build_native_stream_chunks,
    build_openai_chat_response,
    build_openai_stream_chunks,
    encode_sse_event,
    failing_stream_transport,
)

__all__ = [
    "FailingByteStream",
    "FakeUpstream",
    "RecordingSink",
    "UpstreamResponse",
    "build_native_response",
    "build_native_stream_chunks",
    "build_openai_chat_response",
    "build_openai_stream_chunks",
    "encode_sse_event",
    "failing_stream_transport",
]
