"""Frames canonical output onto a response sink."""

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Mapping

from .exceptions import GatewayError
from .sink import ResponseSink
from .sse import DONE_FRAME, format_sse_frame
from .transcoder import CanonicalChunk

logger = logging.getLogger("llm-gateway")

SSE_HEADERS = {
    "content-type": "text/event-stream",
    "cache-control": "no-cache",
    "connection": "close",
}
JSON_HEADERS = {"content-type": "application/json"}


@dataclass
class StreamOutcome:
    """What the emitter saw of a stream once the sentinel was written."""

    completed: bool
    content: str
    chunks: int


class SSEEmitter:
    def __init__(self, sink: ResponseSink) -> None:
        self.sink = sink

    @property
    def started(self) -> bool:
        return self.sink.started

    async def stream(self, chunks: AsyncIterator[CanonicalChunk]) -> StreamOutcome:
        """Write each chunk as an SSE frame, then the ``[DONE]`` sentinel.

        The sentinel is written and the sink ended on every exit path. An
        upstream failure part-way through is logged and ends the stream
        early; callers still see a terminated stream.
        """
        self.sink.start(200, SSE_HEADERS)
        parts: list[str] = []
        count = 0
        completed = False
        try:
            async for chunk in chunks:
                await self.sink.write(format_sse_frame(chunk.to_json()))
                parts.append(chunk.content)
                count += 1
            completed = True
        except GatewayError as exc:
            logger.error(
                "Stream failed after %d chunks; closing with sentinel: %s",
                count,
                exc.message,
            )
        finally:
            await self.sink.write(DONE_FRAME)
            await self.sink.end()
        logger.debug("Stream finished: %d chunks, completed=%s", count, completed)
        return StreamOutcome(completed=completed, content="".join(parts), chunks=count)

    async def send_json(self, body: Mapping[str, Any], status_code: int = 200) -> None:
        """Write a single JSON body and end the sink."""
        self.sink.start(status_code, JSON_HEADERS)
        try:
            await self.sink.write(json.dumps(body, ensure_ascii=False))
        finally:
            await self.sink.end()

    async def send_error(self, exc: GatewayError) -> None:
        body = {
            "error": {
                "message": exc.message,
                "type": exc.error_type,
                "code": exc.code,
            }
        }
        await self.send_json(body, status_code=exc.status_code)
