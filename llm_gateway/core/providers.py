"""Provider clients: one long-lived client per configured backend.

Two variants share one contract:

- ``OpenAICompatibleClient`` posts to ``{base_url}/chat/completions`` and
  streams the backend's own ``chat.completion.chunk`` objects.
- ``NativeProviderClient`` posts to ``models/{model}:generateContent`` (or
  ``:streamGenerateContent?alt=sse``) and streams ``candidates`` increments.

Both prepend the backend's stored conversation history to the caller's
messages before dispatch. Provider-specific shapes stay inside the stream of
native units; the transcoder turns them into canonical chunks.
"""

import abc
import json
import logging
from typing import Any, AsyncIterator, Iterable, List, Mapping, Optional, Union

import httpx

from .conversation import ConversationMessage, ConversationStore, LoadResult
from .exceptions import UpstreamUnavailable
from .settings import (
    DEFAULT_TIMEOUT,
    BackendSettings,
    NativeProviderSettings,
    OpenAICompatibleSettings,
)
from .sse import detect_stream_error, iter_sse_units
from .upstream_transport import get_upstream_transport

logger = logging.getLogger("llm-gateway")

NativeUnit = Union[Mapping[str, Any], str]

# Request fields the gateway controls itself
RESERVED_PARAMS = {"messages", "message", "stream", "model"}


def format_httpx_error(exc: Exception, url: Optional[str] = None) -> str:
    """Produce a short description of an httpx error for logs and error bodies."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)
    try:
        request = exc.request if isinstance(exc, httpx.HTTPError) else None
    except RuntimeError:
        # httpx raises when the error was created without a request
        request = None
    if request is not None:
        parts.append(f"request={request.method} {request.url}")
    elif url:
        parts.append(f"url={url}")
    return "; ".join(parts)


def _safe_headers_for_log(headers: Mapping[str, str]) -> dict[str, str]:
    masked: dict[str, str] = {}
    for key, value in headers.items():
        if key.lower() in {"authorization", "x-goog-api-key", "api-key"}:
            masked[key] = "***"
        else:
            masked[key] = value
    return masked


def _upstream_error_detail(resp: httpx.Response, body: bytes) -> str:
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        payload = None
    if isinstance(payload, Mapping):
        error = payload.get("error")
        if isinstance(error, Mapping) and error.get("message"):
            return str(error["message"])
    text = body.decode("utf-8", errors="replace").strip()
    return text[:500] or resp.reason_phrase


class ProviderClient(abc.ABC):
    """Base class for a backend client and its conversation history."""

    kind = "abstract"

    def __init__(self, name: str, settings: BackendSettings) -> None:
        self.name = name
        self.settings = settings
        self.model = settings.model
        self.history = ConversationStore()
        self._http: Optional[httpx.AsyncClient] = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r} model={self.model!r}>"

    # ------------------------------------------------------------------
    # Conversation history
    # ------------------------------------------------------------------

    def load_history(self, path: str) -> LoadResult:
        return self.history.load(path)

    def clear_history(self) -> None:
        self.history.clear()
        logger.info("Cleared conversation history for backend %s", self.name)

    def append_to_history(self, role: str, content: str) -> ConversationMessage:
        return self.history.append(role, content)

    def snapshot_history(self) -> List[ConversationMessage]:
        return self.history.snapshot()

    def merge_messages(
        self, messages: Iterable[ConversationMessage]
    ) -> List[ConversationMessage]:
        """Stored history as context, followed by the caller's messages."""
        return self.history.merged_with(messages)

    def record_exchange(self, turn: ConversationMessage, reply: str) -> None:
        """Remember a completed turn and the assistant's reply."""
        self.history.extend([turn])
        if reply:
            self.history.append("assistant", reply)

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    @property
    def timeout(self) -> float:
        return self.settings.timeout or DEFAULT_TIMEOUT

    @abc.abstractmethod
    def _endpoint(self, *, stream: bool) -> str:
        ...

    @abc.abstractmethod
    def _headers(self, *, stream: bool) -> dict[str, str]:
        ...

    @abc.abstractmethod
    def _build_body(
        self, messages: List[ConversationMessage], params: Mapping[str, Any], *, stream: bool
    ) -> dict[str, Any]:
        ...

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            url = self._endpoint(stream=False)
            self._http = httpx.AsyncClient(
                timeout=self.timeout,
                transport=get_upstream_transport(url),
                follow_redirects=True,
            )
            logger.debug("Created HTTP client for backend %s", self.name)
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    # ------------------------------------------------------------------
    # Completions
    # ------------------------------------------------------------------

    async def complete_non_streaming(
        self,
        messages: Iterable[ConversationMessage],
        params: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Issue one blocking completion and return the provider's JSON body."""
        merged = self.merge_messages(messages)
        url = self._endpoint(stream=False)
        headers = self._headers(stream=False)
        body = self._build_body(merged, params or {}, stream=False)
        logger.debug(
            "POST %s for backend %s (%d messages), headers=%s",
            url,
            self.name,
            len(merged),
            _safe_headers_for_log(headers),
        )

        try:
            resp = await self._client().post(url, headers=headers, json=body)
        except httpx.HTTPError as exc:
            detail = format_httpx_error(exc, url)
            logger.error("Backend %s request failed: %s", self.name, detail)
            raise UpstreamUnavailable(f"{self.name} request error: {detail}") from exc

        if resp.status_code >= 400:
            detail = _upstream_error_detail(resp, resp.content)
            logger.warning(
                "Backend %s returned status %d: %s", self.name, resp.status_code, detail
            )
            raise UpstreamUnavailable(
                f"{self.name} returned status {resp.status_code}: {detail}",
                status_code=resp.status_code,
            )

        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamUnavailable(
                f"{self.name} returned a body that is not JSON"
            ) from exc

    async def complete_streaming(
        self,
        messages: Iterable[ConversationMessage],
        params: Optional[Mapping[str, Any]] = None,
    ) -> AsyncIterator[NativeUnit]:
        """Open a streaming completion and return its lazy sequence of units.

        The upstream request is sent and its status checked before this
        returns, so a rejected request raises here rather than mid-stream.
        """
        merged = self.merge_messages(messages)
        url = self._endpoint(stream=True)
        headers = self._headers(stream=True)
        body = self._build_body(merged, params or {}, stream=True)
        stream_timeout = httpx.Timeout(
            connect=self.timeout, read=None, write=self.timeout, pool=self.timeout
        )
        logger.debug(
            "Streaming POST %s for backend %s (%d messages), headers=%s",
            url,
            self.name,
            len(merged),
            _safe_headers_for_log(headers),
        )

        client = self._client()
        try:
            request = client.build_request(
                "POST", url, headers=headers, json=body, timeout=stream_timeout
            )
            resp = await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            detail = format_httpx_error(exc, url)
            logger.error("Backend %s stream request failed: %s", self.name, detail)
            raise UpstreamUnavailable(f"{self.name} request error: {detail}") from exc

        if resp.status_code >= 400:
            try:
                data = await resp.aread()
            finally:
                await resp.aclose()
            detail = _upstream_error_detail(resp, data)
            logger.warning(
                "Backend %s stream returned status %d: %s",
                self.name,
                resp.status_code,
                detail,
            )
            raise UpstreamUnavailable(
                f"{self.name} returned status {resp.status_code}: {detail}",
                status_code=resp.status_code,
            )

        logger.info("Stream from backend %s opened, status %d", self.name, resp.status_code)
        return self._iter_units(resp, url)

    async def _iter_units(self, resp: httpx.Response, url: str) -> AsyncIterator[NativeUnit]:
        try:
            async for unit in iter_sse_units(resp.aiter_bytes()):
                error = detect_stream_error(unit)
                if error:
                    raise UpstreamUnavailable(f"{self.name}: {error}")
                yield unit
        except httpx.HTTPError as exc:
            detail = format_httpx_error(exc, url)
            raise UpstreamUnavailable(f"{self.name} stream interrupted: {detail}") from exc
        finally:
            await resp.aclose()


class OpenAICompatibleClient(ProviderClient):
    """Client for backends that speak the OpenAI chat-completions API."""

    kind = "openai"

    def __init__(self, name: str, settings: OpenAICompatibleSettings) -> None:
        super().__init__(name, settings)

    def _endpoint(self, *, stream: bool) -> str:
        return self.settings.build_url("/chat/completions")

    def _headers(self, *, stream: bool) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream" if stream else "application/json",
            "Accept-Encoding": "identity",
        }
        if self.settings.api_key:
            headers["Authorization"] = f"Bearer {self.settings.api_key}"
        return headers

    def _build_body(
        self, messages: List[ConversationMessage], params: Mapping[str, Any], *, stream: bool
    ) -> dict[str, Any]:
        body = {k: v for k, v in params.items() if k not in RESERVED_PARAMS}
        body["model"] = self.model
        body["messages"] = [message.to_dict() for message in messages]
        body["stream"] = stream
        return body


class NativeProviderClient(ProviderClient):
    """Client for the provider's own generate-content API."""

    kind = "native"

    ROLE_NAMES = {"user": "user", "assistant": "model"}

    def __init__(self, name: str, settings: NativeProviderSettings) -> None:
        super().__init__(name, settings)

    def _endpoint(self, *, stream: bool) -> str:
        method = "streamGenerateContent" if stream else "generateContent"
        return self.settings.build_url(method, stream=stream)

    def _headers(self, *, stream: bool) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": self.settings.api_key,
        }

    def _build_body(
        self, messages: List[ConversationMessage], params: Mapping[str, Any], *, stream: bool
    ) -> dict[str, Any]:
        contents = []
        system_texts = []
        for message in messages:
            if message.role == "system":
                system_texts.append(message.content)
                continue
            contents.append(
                {
                    "role": self.ROLE_NAMES[message.role],
                    "parts": [{"text": message.content}],
                }
            )
        body: dict[str, Any] = {"contents": contents}
        if system_texts:
            body["systemInstruction"] = {"parts": [{"text": "\n\n".join(system_texts)}]}

        generation_config: dict[str, Any] = {}
        if params.get("temperature") is not None:
            generation_config["temperature"] = params["temperature"]
        if params.get("top_p") is not None:
            generation_config["topP"] = params["top_p"]
        max_tokens = params.get("max_tokens", params.get("max_completion_tokens"))
        if max_tokens is not None:
            generation_config["maxOutputTokens"] = max_tokens
        stop = params.get("stop")
        if stop:
            generation_config["stopSequences"] = [stop] if isinstance(stop, str) else list(stop)
        if generation_config:
            body["generationConfig"] = generation_config
        return body


def create_provider_client(name: str, settings: BackendSettings) -> ProviderClient:
    """Pick the client variant matching the settings shape."""
    if isinstance(settings, OpenAICompatibleSettings):
        return OpenAICompatibleClient(name, settings)
    if isinstance(settings, NativeProviderSettings):
        return NativeProviderClient(name, settings)
    raise TypeError(f"Unsupported settings type for backend '{name}': {type(settings).__name__}")
