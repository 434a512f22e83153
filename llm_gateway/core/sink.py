"""Writable response sinks.

A sink is what the transport hands the router: the status and headers are
chosen once with ``start``, then bytes are written and the sink is ended.
"""

from typing import Mapping, Optional, Protocol, Union

Data = Union[str, bytes]


class ResponseSink(Protocol):
    started: bool
    ended: bool

    def start(self, status_code: int, headers: Mapping[str, str]) -> None:
        ...

    async def write(self, data: Data) -> None:
        ...

    async def end(self) -> None:
        ...


def _to_bytes(data: Data) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else data


class BaseSink:
    """Enforces the start-once / no-write-after-end contract."""

    def __init__(self) -> None:
        self.status_code: Optional[int] = None
        self.headers: dict[str, str] = {}
        self.started = False
        self.ended = False

    def start(self, status_code: int, headers: Mapping[str, str]) -> None:
        if self.started:
            raise RuntimeError("Response status and headers were already sent")
        self.status_code = status_code
        self.headers = dict(headers)
        self.started = True

    async def write(self, data: Data) -> None:
        if not self.started:
            raise RuntimeError("start() must be called before write()")
        if self.ended:
            raise RuntimeError("Cannot write to an ended response")
        await self._write(_to_bytes(data))

    async def end(self) -> None:
        if self.ended:
            return
        self.ended = True
        await self._end()

    async def _write(self, data: bytes) -> None:
        raise NotImplementedError

    async def _end(self) -> None:
        pass


class RecordingSink(BaseSink):
    """Keeps every write in memory."""

    def __init__(self) -> None:
        super().__init__()
        self.writes: list[str] = []

    async def _write(self, data: bytes) -> None:
        self.writes.append(data.decode("utf-8"))

    @property
    def body(self) -> str:
        return "".join(self.writes)

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("content-type")
