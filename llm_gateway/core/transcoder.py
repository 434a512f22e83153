"""Conversion of provider-native output into the canonical envelope.

Every streamed unit falls into exactly one of four shapes, tried in order:

    CHAT_CHUNK       {"choices": [...]}      OpenAI-compatible chunk, passed through
    CANDIDATE_CHUNK  {"candidates": [...]}   native provider increment
    TEXT             "raw text"              wrapped as delta content
    UNKNOWN          anything else           empty, non-terminal chunk

Canonicalization never raises: a unit that doesn't match a known shape is
logged and replaced by an empty chunk so an in-flight stream keeps going.
"""

import enum
import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Mapping, Optional

from .exceptions import TranscodeAnomaly

logger = logging.getLogger("llm-gateway")

# Matched exactly: "Stop" or "MAX_TOKENS" leave finish_reason null
NATIVE_STOP_REASONS = frozenset({"STOP", "stop"})


class UnitKind(str, enum.Enum):
    CHAT_CHUNK = "chat_chunk"
    CANDIDATE_CHUNK = "candidate_chunk"
    TEXT = "text"
    UNKNOWN = "unknown"


def classify_unit(unit: Any) -> UnitKind:
    if isinstance(unit, Mapping):
        if isinstance(unit.get("choices"), list):
            return UnitKind.CHAT_CHUNK
        if isinstance(unit.get("candidates"), list):
            return UnitKind.CANDIDATE_CHUNK
        return UnitKind.UNKNOWN
    if isinstance(unit, (str, bytes)):
        return UnitKind.TEXT
    return UnitKind.UNKNOWN


def new_completion_id() -> str:
    return f"chatcmpl-{uuid.uuid4().hex[:24]}"


def zero_usage() -> dict[str, int]:
    return {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}


@dataclass
class CanonicalChunk:
    """One streamed delta in the canonical ``chat.completion.chunk`` shape.

    ``source`` holds the upstream chunk when it was already canonical; it is
    re-serialized as-is so no field the backend sent gets lost.
    """

    id: str
    created: int
    model: str
    content: str = ""
    finish_reason: Optional[str] = None
    usage: Optional[dict[str, int]] = None
    source: Optional[Mapping[str, Any]] = None

    def to_payload(self) -> dict[str, Any]:
        if self.source is not None:
            return dict(self.source)
        payload: dict[str, Any] = {
            "id": self.id,
            "object": "chat.completion.chunk",
            "created": self.created,
            "model": self.model,
            "choices": [
                {
                    "index": 0,
                    "delta": {"content": self.content},
                    "finish_reason": self.finish_reason,
                }
            ],
        }
        if self.usage is not None:
            payload["usage"] = self.usage
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_payload(), ensure_ascii=False)


def _first(items: Any) -> Any:
    if isinstance(items, list) and items:
        return items[0]
    return None


def _token_count(raw: Any) -> Optional[int]:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return max(int(raw), 0)
    except (TypeError, ValueError, OverflowError):
        logger.debug("Ignoring non-numeric token count %r", raw)
        return None


def _native_usage(metadata: Any) -> Optional[dict[str, int]]:
    """Map ``usageMetadata``; a count that isn't a number is treated as 0."""
    if not isinstance(metadata, Mapping):
        return None
    prompt = _token_count(metadata.get("promptTokenCount")) or 0
    completion = _token_count(metadata.get("candidatesTokenCount")) or 0
    total = _token_count(metadata.get("totalTokenCount"))
    if not total:
        total = prompt + completion
    return {
        "prompt_tokens": prompt,
        "completion_tokens": completion,
        "total_tokens": total,
    }


def _candidate_text(candidate: Any, *, all_parts: bool = False) -> str:
    if not isinstance(candidate, Mapping):
        return ""
    content = candidate.get("content")
    if not isinstance(content, Mapping):
        return ""
    parts = content.get("parts")
    if not isinstance(parts, list) or not parts:
        return ""
    selected = parts if all_parts else parts[:1]
    return "".join(
        part["text"]
        for part in selected
        if isinstance(part, Mapping) and isinstance(part.get("text"), str)
    )


class StreamTranscoder:
    """Canonicalizes the units of one stream.

    Chunks built from non-canonical units share one completion id and
    timestamp so callers see a consistent stream.
    """

    def __init__(
        self,
        model: str = "",
        completion_id: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.model = model
        self.completion_id = completion_id or new_completion_id()
        self.created = int(clock())

    def _chunk(self, **fields: Any) -> CanonicalChunk:
        return CanonicalChunk(
            id=self.completion_id, created=self.created, model=self.model, **fields
        )

    def canonicalize(self, unit: Any) -> CanonicalChunk:
        kind = classify_unit(unit)
        try:
            if kind is UnitKind.CHAT_CHUNK:
                return self._from_chat_chunk(unit)
            if kind is UnitKind.CANDIDATE_CHUNK:
                return self._from_candidate_chunk(unit)
            if kind is UnitKind.TEXT:
                text = unit.decode("utf-8", errors="replace") if isinstance(unit, bytes) else unit
                return self._chunk(content=text)
            raise TranscodeAnomaly(f"unrecognized stream unit: {unit!r:.200}")
        except TranscodeAnomaly as exc:
            logger.warning("Transcode anomaly: %s", exc.message)
        except (TypeError, ValueError, AttributeError) as exc:
            logger.warning("Transcode anomaly on %s unit: %s", kind.value, exc)
        return self._chunk()

    async def transcode(self, units: AsyncIterator[Any]) -> AsyncIterator[CanonicalChunk]:
        async for unit in units:
            yield self.canonicalize(unit)

    def _from_chat_chunk(self, unit: Mapping[str, Any]) -> CanonicalChunk:
        choice = _first(unit.get("choices"))
        content = ""
        finish_reason = None
        if isinstance(choice, Mapping):
            delta = choice.get("delta")
            if isinstance(delta, Mapping) and isinstance(delta.get("content"), str):
                content = delta["content"]
            finish_reason = choice.get("finish_reason")
        return CanonicalChunk(
            id=str(unit.get("id") or self.completion_id),
            created=int(unit.get("created") or self.created),
            model=str(unit.get("model") or self.model),
            content=content,
            finish_reason=finish_reason,
            usage=unit.get("usage") if isinstance(unit.get("usage"), dict) else None,
            source=unit,
        )

    def _from_candidate_chunk(self, unit: Mapping[str, Any]) -> CanonicalChunk:
        candidate = _first(unit.get("candidates"))
        finish_reason = None
        reason = candidate.get("finishReason") if isinstance(candidate, Mapping) else None
        if reason in NATIVE_STOP_REASONS:
            finish_reason = "stop"
        return self._chunk(
            content=_candidate_text(candidate),
            finish_reason=finish_reason,
            usage=_native_usage(unit.get("usageMetadata")),
        )


def canonicalize(unit: Any, *, model: str = "") -> CanonicalChunk:
    """Canonicalize a single unit outside of a stream."""
    return StreamTranscoder(model=model).canonicalize(unit)


def canonicalize_response(native: Any, *, model: str = "") -> dict[str, Any]:
    """Shape a non-streaming provider response as a canonical ``chat.completion``.

    OpenAI-compatible responses pass through; native responses are rebuilt.
    ``usage`` is always present, zero-filled when the provider omits it.
    """
    if isinstance(native, (str, bytes)):
        try:
            native = json.loads(native)
        except json.JSONDecodeError:
            logger.warning("Non-streaming response was not JSON; treating as text")
            return _build_response(model, str(native), zero_usage())

    if isinstance(native, Mapping) and isinstance(native.get("choices"), list):
        response = dict(native)
        usage = response.get("usage")
        if not isinstance(usage, Mapping):
            response["usage"] = zero_usage()
        else:
            response["usage"] = {**zero_usage(), **usage}
        return response

    if isinstance(native, Mapping) and isinstance(native.get("candidates"), list):
        text = _candidate_text(_first(native.get("candidates")), all_parts=True)
        usage = _native_usage(native.get("usageMetadata")) or zero_usage()
        return _build_response(str(native.get("modelVersion") or model), text, usage)

    logger.warning("Transcode anomaly: unrecognized response shape %r", native)
    return _build_response(model, "", zero_usage())


def _build_response(model: str, content: str, usage: dict[str, int]) -> dict[str, Any]:
    return {
        "id": new_completion_id(),
        "object": "chat.completion",
        "created": int(time.time()),
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
        "usage": usage,
    }


def response_text(response: Mapping[str, Any]) -> str:
    """Assistant text of a canonical response, or '' when absent."""
    choice = _first(response.get("choices"))
    if not isinstance(choice, Mapping):
        return ""
    message = choice.get("message")
    if isinstance(message, Mapping) and isinstance(message.get("content"), str):
        return message["content"]
    return ""
