"""Backend settings parsed from the static configuration."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from .exceptions import ConfigurationError

logger = logging.getLogger("llm-gateway")

DEFAULT_TIMEOUT = 60.0
DEFAULT_NATIVE_API_ROOT = "https://generativelanguage.googleapis.com/v1beta"


@dataclass(frozen=True)
class OpenAICompatibleSettings:
    """Settings for a backend speaking the OpenAI chat-completions REST API."""

    base_url: str
    api_key: str
    model: str
    timeout: Optional[float] = None

    def build_url(self, path: str) -> str:
        """Build the full URL for a backend request."""
        base = self.base_url.rstrip("/")
        normalized_path = path or ""
        if not normalized_path.startswith("/"):
            normalized_path = f"/{normalized_path}"
        return f"{base}{normalized_path}"


@dataclass(frozen=True)
class NativeProviderSettings:
    """Settings for a backend reached through its own generate-content API."""

    api_key: str
    model: str
    api_root: str = DEFAULT_NATIVE_API_ROOT
    timeout: Optional[float] = None

    def build_url(self, method: str, *, stream: bool = False) -> str:
        root = self.api_root.rstrip("/")
        url = f"{root}/models/{self.model}:{method}"
        if stream:
            url = f"{url}?alt=sse"
        return url


BackendSettings = Union[OpenAICompatibleSettings, NativeProviderSettings]


def _parse_timeout(raw: Any) -> Optional[float]:
    if raw is None:
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid request_timeout value %r", raw)
        return None


def parse_backend_entry(name: str, entry: Mapping[str, Any]) -> BackendSettings:
    """Build settings for one backend.

    The presence of ``base_url`` (or the legacy ``url``) selects the
    OpenAI-compatible variant; without it the backend is a native provider.
    """
    if not isinstance(entry, Mapping):
        raise ConfigurationError(f"Backend '{name}' must be a mapping")

    api_key = entry.get("api_key", entry.get("token"))
    model = entry.get("model")
    if not api_key:
        raise ConfigurationError(f"Backend '{name}' is missing api_key")
    if not model:
        raise ConfigurationError(f"Backend '{name}' is missing model")

    timeout = _parse_timeout(entry.get("request_timeout"))
    base_url = entry.get("base_url") or entry.get("url")
    if base_url:
        return OpenAICompatibleSettings(
            base_url=str(base_url).strip(),
            api_key=str(api_key),
            model=str(model),
            timeout=timeout,
        )

    api_root = str(entry.get("api_root") or DEFAULT_NATIVE_API_ROOT).strip()
    return NativeProviderSettings(
        api_key=str(api_key),
        model=str(model),
        api_root=api_root,
        timeout=timeout,
    )


def parse_backend_settings(config: Mapping[str, Any]) -> Dict[str, BackendSettings]:
    """Parse the ``backends`` section of the configuration."""
    entries = config.get("backends") or {}
    if not isinstance(entries, Mapping):
        raise ConfigurationError("'backends' must be a mapping of name to settings")
    settings: Dict[str, BackendSettings] = {}
    for name, entry in entries.items():
        settings[str(name)] = parse_backend_entry(str(name), entry)
    return settings


def conversation_settings(config: Mapping[str, Any]) -> Dict[str, Any]:
    """Return conversation options from ``gateway_settings.conversation``."""
    gateway_settings = config.get("gateway_settings") or {}
    raw = gateway_settings.get("conversation") or {}
    record_turns = _parse_bool(raw.get("record_turns", True))
    # Recorded history already holds the earlier turns
    default_forward = "last" if record_turns else "all"
    forward = str(raw.get("forward_messages") or default_forward).strip().lower()
    if forward not in {"all", "last"}:
        logger.warning("Unknown forward_messages value %r; using %r", forward, default_forward)
        forward = default_forward
    if record_turns and forward == "all":
        logger.warning(
            "record_turns is on with forward_messages=all; callers that resend the "
            "whole conversation will have it duplicated upstream"
        )
    return {
        "default_path": str(raw.get("default_path") or "conversation_history.json"),
        "record_turns": record_turns,
        "forward_messages": forward,
    }


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return False
