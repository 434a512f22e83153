"""Queue-backed sink bridging the router to a streaming HTTP response."""

import asyncio
import logging
from typing import AsyncIterator, Mapping, Optional

from ..core.sink import BaseSink

logger = logging.getLogger("llm-gateway")

DEFAULT_QUEUE_SIZE = 64


class QueueSink(BaseSink):
    """Hands written frames to whoever iterates ``iter_bytes``.

    ``write`` waits for queue space, so the router pulls upstream units only
    as fast as the caller consumes frames. Once the caller goes away the
    sink is detached: queued frames are dropped and further writes are
    discarded while the upstream call runs to completion.
    """

    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE) -> None:
        super().__init__()
        self._queue: "asyncio.Queue[Optional[bytes]]" = asyncio.Queue(maxsize=maxsize)
        self._started_event = asyncio.Event()
        self.detached = False

    def start(self, status_code: int, headers: Mapping[str, str]) -> None:
        super().start(status_code, headers)
        self._started_event.set()

    async def wait_started(self) -> None:
        await self._started_event.wait()

    async def _write(self, data: bytes) -> None:
        if self.detached:
            return
        await self._queue.put(data)

    async def _end(self) -> None:
        if self.detached:
            return
        await self._queue.put(None)

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        while True:
            item = await self._queue.get()
            if item is None:
                return
            yield item

    def detach(self) -> None:
        if self.detached:
            return
        self.detached = True
        dropped = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            dropped += 1
        if dropped or not self.ended:
            logger.info("Caller went away; dropped %d pending frames", dropped)
