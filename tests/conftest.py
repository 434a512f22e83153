"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, AsyncIterator, Generator, Iterable, Mapping, Optional

import pytest

# Make the package importable without installing it
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from llm_gateway.core import (  # noqa: E402
    ClientRegistry,
    ConversationMessage,
    GatewayRouter,
    OpenAICompatibleSettings,
    ProviderClient,
    UpstreamUnavailable,
    parse_backend_settings,
)
from llm_gateway.core.upstream_transport import (  # noqa: E402
    clear_upstream_transports,
    register_upstream_transport,
)
from llm_gateway.testing import FakeUpstream  # noqa: E402

ACME_BASE_URL = "http://acme.local/v1"
NATIVE_API_ROOT = "http://native.local/v1beta"


# =============================================================================
# Transport Registry Fixtures
# =============================================================================


@pytest.fixture
def clear_transport_registry() -> Generator[None, None, None]:
    """Clear upstream transport registry after test."""
    yield
    clear_upstream_transports()


@pytest.fixture
def acme_upstream(clear_transport_registry: None) -> FakeUpstream:
    """Fake OpenAI-compatible backend reachable at acme.local."""
    upstream = FakeUpstream()
    register_upstream_transport("acme.local", upstream.transport())
    return upstream


@pytest.fixture
def native_upstream(clear_transport_registry: None) -> FakeUpstream:
    """Fake native provider reachable at native.local."""
    upstream = FakeUpstream()
    register_upstream_transport("native.local", upstream.transport())
    return upstream


# =============================================================================
# Configuration Builders
# =============================================================================


def build_gateway_config(
    *,
    record_turns: bool = True,
    forward_messages: str = "last",
    default_path: str = "conversation_history.json",
) -> dict[str, Any]:
    """Config with one OpenAI-compatible ("acme") and one native ("gemini") backend."""
    return {
        "backends": {
            "acme": {
                "base_url": ACME_BASE_URL,
                "api_key": "acme-key",
                "model": "acme-large",
            },
            "gemini": {
                "api_key": "gemini-key",
                "model": "gemini-test",
                "api_root": NATIVE_API_ROOT,
            },
        },
        "gateway_settings": {
            "conversation": {
                "default_path": default_path,
                "record_turns": record_turns,
                "forward_messages": forward_messages,
            }
        },
    }


@pytest.fixture
def gateway_config() -> dict[str, Any]:
    return build_gateway_config()


@pytest.fixture
def registry(gateway_config: dict[str, Any]) -> ClientRegistry:
    return ClientRegistry(parse_backend_settings(gateway_config))


@pytest.fixture
def gateway_router(registry: ClientRegistry) -> GatewayRouter:
    return GatewayRouter(registry)


# =============================================================================
# Stub Provider Client
# =============================================================================


class StubProviderClient(ProviderClient):
    """Provider client that replays canned units instead of calling HTTP.

    units: what the stream yields, in order
    fail_after: raise UpstreamUnavailable after this many units
    open_error: raise this from complete_streaming/complete_non_streaming
    """

    kind = "stub"

    def __init__(
        self,
        name: str = "stub",
        settings: Optional[OpenAICompatibleSettings] = None,
        *,
        units: Iterable[Any] = (),
        response: Any = None,
        fail_after: Optional[int] = None,
        open_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(
            name,
            settings or OpenAICompatibleSettings(
                base_url="http://stub.local/v1", api_key="k", model="stub-model"
            ),
        )
        self.units = list(units)
        self.response = response
        self.fail_after = fail_after
        self.open_error = open_error
        self.sent: list[list[ConversationMessage]] = []

    def _endpoint(self, *, stream: bool) -> str:
        return "http://stub.local/v1/chat/completions"

    def _headers(self, *, stream: bool) -> dict[str, str]:
        return {}

    def _build_body(self, messages, params, *, stream: bool) -> dict[str, Any]:
        return {}

    async def complete_non_streaming(self, messages, params: Optional[Mapping[str, Any]] = None):
        if self.open_error is not None:
            raise self.open_error
        self.sent.append(self.merge_messages(messages))
        return self.response

    async def complete_streaming(self, messages, params: Optional[Mapping[str, Any]] = None):
        if self.open_error is not None:
            raise self.open_error
        self.sent.append(self.merge_messages(messages))
        return self._replay()

    async def _replay(self) -> AsyncIterator[Any]:
        for index, unit in enumerate(self.units):
            if self.fail_after is not None and index >= self.fail_after:
                raise UpstreamUnavailable("stub stream interrupted")
            yield unit


def stub_router(client: StubProviderClient, **router_kwargs: Any) -> GatewayRouter:
    """Router whose only backend, ``client.name``, resolves to ``client``."""
    registry = ClientRegistry(
        {client.name: client.settings},
        client_factory=lambda name, settings: client,
    )
    return GatewayRouter(registry, **router_kwargs)
