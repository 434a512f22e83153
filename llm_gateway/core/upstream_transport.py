"""Per-host transport overrides for provider HTTP clients.

Provider clients ask this registry for a transport when they build their
``httpx.AsyncClient``. Tests register in-process fakes here so that a
configured ``base_url`` such as ``http://acme.local/v1`` never leaves the
process.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlparse

import httpx

logger = logging.getLogger("llm-gateway")


class TransportOverrides:
    def __init__(self) -> None:
        self._by_host: dict[str, httpx.AsyncBaseTransport] = {}

    @staticmethod
    def _key(host: str) -> str:
        return host.strip().lower()

    def register(self, host: str, transport: httpx.AsyncBaseTransport) -> None:
        if not host:
            raise ValueError("host is required")
        self._by_host[self._key(host)] = transport
        logger.debug("Registered upstream transport for host '%s'", self._key(host))

    def unregister(self, host: str) -> None:
        if host:
            self._by_host.pop(self._key(host), None)

    def clear(self) -> None:
        self._by_host.clear()

    def lookup(self, url: str) -> Optional[httpx.AsyncBaseTransport]:
        host = urlparse(url).netloc if url else ""
        if not host:
            return None
        return self._by_host.get(self._key(host))


_OVERRIDES = TransportOverrides()


def register_upstream_transport(host: str, transport: httpx.AsyncBaseTransport) -> None:
    """Route requests for ``host`` (netloc, e.g. 'acme.local:8000') to ``transport``."""
    _OVERRIDES.register(host, transport)


def register_upstream_transport_for_url(
    url: str, transport: httpx.AsyncBaseTransport
) -> None:
    _OVERRIDES.register(urlparse(url).netloc, transport)


def unregister_upstream_transport(host: str) -> None:
    _OVERRIDES.unregister(host)


def clear_upstream_transports() -> None:
    _OVERRIDES.clear()


def get_upstream_transport(url: str) -> Optional[httpx.AsyncBaseTransport]:
    return _OVERRIDES.lookup(url)
