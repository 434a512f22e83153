"""FastAPI application factory for the gateway."""

import logging
from typing import Any, Mapping, Optional

from fastapi import FastAPI

from .api.routes import gateway_endpoint, wait_for_pending_tasks
from .core import ClientRegistry, GatewayRouter, parse_backend_settings
from .core.registry import set_router
from .core.settings import conversation_settings

logger = logging.getLogger("llm-gateway")


def build_router(
    config: Mapping[str, Any], registry: Optional[ClientRegistry] = None
) -> GatewayRouter:
    """Build a router (and its client registry) from a loaded config."""
    if registry is None:
        registry = ClientRegistry(parse_backend_settings(config))
    conversation = conversation_settings(config)
    return GatewayRouter(
        registry,
        default_history_path=conversation["default_path"],
        record_turns=conversation["record_turns"],
        forward_messages=conversation["forward_messages"],
    )


def create_app(
    config: Mapping[str, Any], registry: Optional[ClientRegistry] = None
) -> FastAPI:
    """Create the gateway application for ``config``.

    The router becomes the process-wide router used by the catch-all route.
    """
    router = build_router(config, registry)
    set_router(router)
    logger.info(
        "Gateway router initialized with backends: %s", router.registry.backend_ids
    )

    app = FastAPI(title="LLM Gateway")
    app.state.gateway_router = router

    @app.on_event("shutdown")
    async def shutdown_event():
        """Finish in-flight requests and close provider clients."""
        await wait_for_pending_tasks()
        await router.registry.aclose()
        logger.info("Gateway shut down")

    app.api_route("/{path:path}", methods=["GET", "POST"])(gateway_endpoint)
    return app
