"""Core module initialization."""

from .conversation import ConversationMessage, ConversationStore, LoadResult
from .emitter import SSEEmitter, StreamOutcome
from .exceptions import (
    ConfigurationError,
    GatewayError,
    MalformedRequest,
    RouteNotFound,
    TranscodeAnomaly,
    UnknownBackend,
    UpstreamUnavailable,
)
from .providers import (
    NativeProviderClient,
    OpenAICompatibleClient,
    ProviderClient,
    create_provider_client,
)
from .registry import ClientRegistry, get_router, set_router
from .router import GatewayRouter, parse_path
from .settings import (
    NativeProviderSettings,
    OpenAICompatibleSettings,
    parse_backend_settings,
)
from .sink import RecordingSink, ResponseSink
from .transcoder import CanonicalChunk, StreamTranscoder, canonicalize, canonicalize_response

__all__ = [
    "CanonicalChunk",
    "ClientRegistry",
    "ConfigurationError",
    "ConversationMessage",
    "ConversationStore",
    "GatewayError",
    "GatewayRouter",
    "LoadResult",
    "MalformedRequest",
    "NativeProviderClient",
    "NativeProviderSettings",
    "OpenAICompatibleClient",
    "OpenAICompatibleSettings",
    "ProviderClient",
    "RecordingSink",
    "ResponseSink",
    "RouteNotFound",
    "SSEEmitter",
    "StreamOutcome",
    "StreamTranscoder",
    "TranscodeAnomaly",
    "UnknownBackend",
    "UpstreamUnavailable",
    "canonicalize",
    "canonicalize_response",
    "create_provider_client",
    "get_router",
    "parse_backend_settings",
    "parse_path",
    "set_router",
]
