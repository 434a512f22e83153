"""Process-wide registries.

``ClientRegistry`` owns the one provider client per backend identifier. It
is created at startup and lives until process teardown; entries are never
evicted or refreshed.

The active ``GatewayRouter`` is also held here so that API routes can reach
it without importing the application module.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from .exceptions import UnknownBackend
from .providers import ProviderClient, create_provider_client
from .settings import BackendSettings

logger = logging.getLogger("llm-gateway")

ClientFactory = Callable[[str, BackendSettings], Any]


class ClientRegistry:
    """Lazily builds and caches one ``ProviderClient`` per backend id.

    Construction is single-flight per backend id: concurrent first requests
    for the same backend wait on one lock and share the instance it builds.
    """

    def __init__(
        self,
        settings: Mapping[str, BackendSettings],
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self._settings = dict(settings)
        self._factory = client_factory or create_provider_client
        self._clients: Dict[str, ProviderClient] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def __contains__(self, backend_id: str) -> bool:
        return backend_id in self._settings

    @property
    def backend_ids(self) -> List[str]:
        return list(self._settings.keys())

    def cached(self, backend_id: str) -> Optional[ProviderClient]:
        return self._clients.get(backend_id)

    async def resolve(self, backend_id: str) -> ProviderClient:
        """Return the client for ``backend_id``, creating it on first use."""
        if backend_id not in self._settings:
            logger.warning("Request for unconfigured backend '%s'", backend_id)
            raise UnknownBackend(backend_id)

        client = self._clients.get(backend_id)
        if client is not None:
            return client

        lock = self._locks.setdefault(backend_id, asyncio.Lock())
        async with lock:
            client = self._clients.get(backend_id)
            if client is not None:
                return client
            created = self._factory(backend_id, self._settings[backend_id])
            if inspect.isawaitable(created):
                created = await created
            self._clients[backend_id] = created
            logger.info("Created provider client for backend %s: %r", backend_id, created)
            return created

    async def aclose(self) -> None:
        """Close every cached client (process teardown)."""
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            await client.aclose()
        if clients:
            logger.info("Closed %d provider clients", len(clients))


# Global router instance - set by create_app during initialization
router = None


def set_router(router_instance):
    """Set the global router instance."""
    global router
    router = router_instance


def get_router():
    """Get the global router instance."""
    if router is None:
        raise RuntimeError("Router not initialized. Did you call set_router?")
    return router
