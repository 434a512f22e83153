"""SSE (Server-Sent Events) framing, decoding and error detection."""

import codecs
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Mapping, Optional

logger = logging.getLogger("llm-gateway")

DONE_SENTINEL = "[DONE]"


def format_sse_frame(data: str) -> str:
    return f"data: {data}\n\n"


DONE_FRAME = format_sse_frame(DONE_SENTINEL)


@dataclass
class SSEEvent:
    data: Optional[str]
    other_lines: list[str] = field(default_factory=list)


class SSEDecoder:
    """Incremental decoder for an upstream ``text/event-stream`` body."""

    def __init__(self) -> None:
        self._buffer = ""
        self._pending_cr = False
        # A multi-byte character may straddle two network reads
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: bytes) -> list[SSEEvent]:
        if not chunk:
            return []
        return self._consume(self._utf8.decode(chunk))

    def _consume(self, text: str, *, final: bool = False) -> list[SSEEvent]:
        if self._pending_cr:
            text = "\r" + text
        # Hold a trailing CR back until we know whether LF follows it
        self._pending_cr = text.endswith("\r") and not final
        if self._pending_cr:
            text = text[:-1]
        self._buffer += text.replace("\r\n", "\n").replace("\r", "\n")
        events: list[SSEEvent] = []

        while True:
            sep_index = self._buffer.find("\n\n")
            if sep_index == -1:
                break
            raw_event = self._buffer[:sep_index]
            self._buffer = self._buffer[sep_index + 2:]
            if not raw_event.strip():
                continue
            events.append(self._parse_event(raw_event))

        return events

    def flush(self) -> list[SSEEvent]:
        """Return whatever events are left in the buffer when the body ends."""
        events = self._consume(self._utf8.decode(b"", final=True), final=True)
        leftover = self._buffer
        self._buffer = ""
        if leftover.strip():
            events.append(self._parse_event(leftover.strip("\n")))
        return events

    @staticmethod
    def _parse_event(raw: str) -> SSEEvent:
        data_lines: list[str] = []
        other_lines: list[str] = []
        for line in raw.split("\n"):
            if line.startswith("data:"):
                data_lines.append(line[5:].lstrip())
            else:
                other_lines.append(line)
        data = "\n".join(data_lines) if data_lines else None
        return SSEEvent(data=data, other_lines=other_lines)


def decode_event_data(data: str) -> Any:
    """Decode one event's data field into a native unit.

    JSON payloads become dicts (or whatever JSON decodes to); anything that
    isn't JSON is passed on as raw text.
    """
    try:
        return json.loads(data)
    except json.JSONDecodeError:
        return data


async def iter_sse_units(byte_stream: AsyncIterator[bytes]) -> AsyncIterator[Any]:
    """Yield decoded units from an SSE byte stream until ``[DONE]`` or EOF."""
    decoder = SSEDecoder()
    async for chunk in byte_stream:
        for event in decoder.feed(chunk):
            if event.data is None:
                continue
            if event.data.strip() == DONE_SENTINEL:
                return
            yield decode_event_data(event.data)
    for event in decoder.flush():
        if event.data is None or event.data.strip() == DONE_SENTINEL:
            continue
        yield decode_event_data(event.data)


def detect_stream_error(payload: Any) -> Optional[str]:
    """Return an error description if a streamed payload is an error event.

    Detects patterns like:
    - {"type": "error", "error": {...}}
    - {"error": {...}} (OpenAI-style and Google-style error bodies)
    """
    if not isinstance(payload, Mapping):
        return None

    if payload.get("type") == "error":
        error_obj = payload.get("error") or {}
        if isinstance(error_obj, Mapping):
            error_msg = error_obj.get("message") or str(error_obj)
        else:
            error_msg = str(error_obj) if error_obj else "unknown error"
        return f"SSE stream error: {error_msg}"

    error_obj = payload.get("error")
    if isinstance(error_obj, Mapping):
        error_msg = error_obj.get("message") or str(error_obj)
        error_type = error_obj.get("type") or error_obj.get("status") or "unknown"
        return f"SSE stream error: {error_msg} (type={error_type})"

    return None
