"""Request routing for the gateway.

Paths handled:

    /{backend}/v1/chat/completions          chat completion (stream or not)
    /{backend}/conversation/{operation}     load | clear | status | add

Each request runs ROUTING -> BACKEND_RESOLVED -> dispatch -> CLOSED. Any
failure before the first byte is written becomes a status-coded JSON error.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from .conversation import VALID_ROLES, ConversationMessage, LoadResult
from .emitter import SSEEmitter
from .exceptions import GatewayError, MalformedRequest, RouteNotFound
from .providers import ProviderClient
from .registry import ClientRegistry
from .sink import ResponseSink
from .transcoder import StreamTranscoder, canonicalize_response, response_text

logger = logging.getLogger("llm-gateway")

CHAT = "chat"
CONVERSATION = "conversation"
CONVERSATION_OPERATIONS = frozenset({"load", "clear", "status", "add"})
DEFAULT_HISTORY_PATH = "conversation_history.json"


@dataclass(frozen=True)
class Route:
    backend_id: str
    kind: str
    operation: Optional[str] = None


def parse_path(path: str, method: str = "POST") -> Route:
    """Split a request path into backend id, endpoint kind and operation."""
    segments = [segment for segment in (path or "").split("?", 1)[0].split("/") if segment]
    method = method.upper()
    if len(segments) == 4 and segments[1:] == ["v1", "chat", "completions"]:
        if method == "POST":
            return Route(segments[0], CHAT)
    elif len(segments) == 3 and segments[1] == CONVERSATION:
        operation = segments[2]
        if operation in CONVERSATION_OPERATIONS and (method == "POST" or operation == "status"):
            return Route(segments[0], CONVERSATION, operation)
    raise RouteNotFound(path)


def decode_body(body: Optional[str]) -> dict[str, Any]:
    if body is None or not body.strip():
        return {}
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as exc:
        raise MalformedRequest("Invalid JSON payload", code="invalid_json") from exc
    if not isinstance(payload, dict):
        raise MalformedRequest(
            "Request body must be a JSON object", code="invalid_json_shape"
        )
    return payload


def _message_text(content: Any) -> Optional[str]:
    if isinstance(content, str):
        return content
    # OpenAI content-part arrays: keep the text parts
    if isinstance(content, list):
        texts = [
            part.get("text")
            for part in content
            if isinstance(part, Mapping) and part.get("type") == "text"
        ]
        if all(isinstance(text, str) for text in texts):
            return "".join(texts)
    return None


def _to_message(raw: Any) -> ConversationMessage:
    if isinstance(raw, str):
        return ConversationMessage(role="user", content=raw)
    if not isinstance(raw, Mapping):
        raise MalformedRequest("Each message must be an object", code="invalid_message")
    role = raw.get("role")
    content = _message_text(raw.get("content"))
    if role not in VALID_ROLES or content is None:
        raise MalformedRequest(
            "Each message needs a role (user, assistant or system) and text content",
            code="invalid_message",
        )
    return ConversationMessage(role=role, content=content)


def extract_messages(payload: Mapping[str, Any], forward: str = "all") -> List[ConversationMessage]:
    """Pull the caller's messages out of a chat-completion body.

    The ``messages`` array is preferred; a lone ``message`` is accepted for
    older callers. With ``forward="last"`` only the final message is kept
    and the stored history supplies the context.
    """
    raw_messages = payload.get("messages")
    if isinstance(raw_messages, list) and raw_messages:
        selected = raw_messages if forward == "all" else raw_messages[-1:]
    elif payload.get("message") is not None:
        selected = [payload["message"]]
    else:
        raise MalformedRequest("You must provide a messages array", code="missing_parameter")
    return [_to_message(raw) for raw in selected]


class GatewayRouter:
    """Dispatches one request at a time onto a response sink."""

    def __init__(
        self,
        registry: ClientRegistry,
        *,
        default_history_path: str = DEFAULT_HISTORY_PATH,
        record_turns: bool = True,
        forward_messages: str = "last",
    ) -> None:
        self.registry = registry
        self.default_history_path = default_history_path
        self.record_turns = record_turns
        self.forward_messages = forward_messages

    async def handle(
        self, path: str, body: Optional[str], sink: ResponseSink, method: str = "POST"
    ) -> None:
        logger.info("Handling %s %s", method, path)
        emitter = SSEEmitter(sink)
        try:
            route = parse_path(path, method)
            client = await self.registry.resolve(route.backend_id)
            payload = decode_body(body)
            if route.kind == CHAT:
                await self._handle_chat(client, payload, emitter)
            else:
                await self._handle_conversation(client, route.operation, payload, emitter)
        except GatewayError as exc:
            if emitter.started:
                logger.error("Error after response started for %s: %s", path, exc.message)
                await sink.end()
                return
            logger.warning(
                "Request to %s failed with %d: %s", path, exc.status_code, exc.message
            )
            await emitter.send_error(exc)

    async def _handle_chat(
        self, client: ProviderClient, payload: Mapping[str, Any], emitter: SSEEmitter
    ) -> None:
        messages = extract_messages(payload, self.forward_messages)
        params = {k: v for k, v in payload.items() if k not in {"messages", "message"}}
        is_stream = bool(payload.get("stream"))
        logger.info(
            "Chat completion via backend %s, stream=%s, %d new messages",
            client.name,
            is_stream,
            len(messages),
        )

        if is_stream:
            units = await client.complete_streaming(messages, params)
            transcoder = StreamTranscoder(model=client.model)
            outcome = await emitter.stream(transcoder.transcode(units))
            if outcome.completed and self.record_turns:
                client.record_exchange(messages[-1], outcome.content)
            logger.info(
                "Streamed %d chunks from backend %s (completed=%s)",
                outcome.chunks,
                client.name,
                outcome.completed,
            )
            return

        native = await client.complete_non_streaming(messages, params)
        response = canonicalize_response(native, model=client.model)
        await emitter.send_json(response)
        if self.record_turns:
            client.record_exchange(messages[-1], response_text(response))
        logger.info("Completed non-streaming request via backend %s", client.name)

    async def _handle_conversation(
        self,
        client: ProviderClient,
        operation: Optional[str],
        payload: Mapping[str, Any],
        emitter: SSEEmitter,
    ) -> None:
        if operation == "load":
            path = payload.get("filePath") or payload.get("file_path") or self.default_history_path
            result = client.load_history(str(path))
            messages = {
                LoadResult.LOADED: f"Conversation history loaded from {path}",
                LoadResult.MISSING: f"Conversation file {path} not found; history unchanged",
                LoadResult.INVALID: f"Conversation file {path} could not be parsed; history cleared",
            }
            body = {
                "success": result is LoadResult.LOADED,
                "message": messages[result],
                "historyLength": len(client.history),
            }
        elif operation == "clear":
            client.clear_history()
            body = {"success": True, "message": "Conversation history cleared"}
        elif operation == "status":
            body = {
                "success": True,
                "historyLength": len(client.history),
                "lastMessages": client.history.preview(),
            }
        else:
            role = payload.get("role")
            content = payload.get("content")
            if not role or content is None:
                raise MalformedRequest(
                    "Both role and content are required", code="missing_parameter"
                )
            if role not in VALID_ROLES or not isinstance(content, str):
                raise MalformedRequest(
                    "role must be user, assistant or system and content a string",
                    code="invalid_message",
                )
            client.append_to_history(role, content)
            body = {
                "success": True,
                "message": f"Added {role} message to conversation history",
                "historyLength": len(client.history),
            }
        logger.info(
            "Conversation %s for backend %s: %d messages",
            operation,
            client.name,
            len(client.history),
        )
        await emitter.send_json(body)
