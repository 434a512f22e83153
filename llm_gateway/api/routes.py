"""HTTP entry point mapping FastAPI requests onto the gateway router."""

import asyncio
import logging

from fastapi import Request, Response
from fastapi.responses import StreamingResponse

from ..core.registry import get_router
from .sink import QueueSink

logger = logging.getLogger("llm-gateway")

_PENDING_TASKS: set[asyncio.Task] = set()


def _register_background_task(task: asyncio.Task) -> None:
    _PENDING_TASKS.add(task)

    def _cleanup(_task: asyncio.Task) -> None:
        _PENDING_TASKS.discard(_task)
        if not _task.cancelled() and _task.exception() is not None:
            logger.error(
                "Gateway handler failed after the response started",
                exc_info=_task.exception(),
            )

    task.add_done_callback(_cleanup)


async def wait_for_pending_tasks() -> None:
    """Let in-flight upstream calls finish (used on shutdown)."""
    if not _PENDING_TASKS:
        return
    logger.info("Waiting for %d in-flight gateway requests", len(_PENDING_TASKS))
    await asyncio.gather(*list(_PENDING_TASKS), return_exceptions=True)


async def gateway_endpoint(request: Request) -> Response:
    """Catch-all endpoint: ``/{backend}/v1/chat/completions`` and ``/{backend}/conversation/*``."""
    router = get_router()
    body = (await request.body()).decode("utf-8", errors="replace")
    sink = QueueSink()

    handler = asyncio.create_task(
        router.handle(request.url.path, body, sink, method=request.method)
    )
    started = asyncio.create_task(sink.wait_started())
    await asyncio.wait({handler, started}, return_when=asyncio.FIRST_COMPLETED)

    if not sink.started:
        started.cancel()
        # Surfaces any unexpected exception as a 500 from the framework
        await handler
        logger.error("Router finished %s without writing a response", request.url.path)
        return Response(status_code=500)

    _register_background_task(handler)

    async def frames():
        try:
            async for frame in sink.iter_bytes():
                yield frame
        finally:
            sink.detach()

    headers = dict(sink.headers)
    media_type = headers.pop("content-type", None)
    return StreamingResponse(
        frames(),
        status_code=sink.status_code or 200,
        headers=headers,
        media_type=media_type,
    )
