"""Per-backend conversation history.

The store keeps an ordered list of ``ConversationMessage`` entries that the
owning provider client prepends to every outgoing request. History can be
primed from a conversation file on disk:

    {
        "format": "canonical" | "native",
        "version": "1.0",
        "conversation_history": [...]
    }

Canonical entries are ``{"role": ..., "content": ...}``. Native entries use
the provider's shape, ``{"role": "user" | "model", "parts": [{"text": ...}]}``,
and are converted on load.
"""

import enum
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Union

logger = logging.getLogger("llm-gateway")

VALID_ROLES = frozenset({"user", "assistant", "system"})
NATIVE_ROLE_MAP = {"user": "user", "model": "assistant", "system": "system"}
PREVIEW_SIZE = 3


@dataclass(frozen=True)
class ConversationMessage:
    role: str
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Optional["ConversationMessage"]:
        """Build a message from a canonical mapping, or None if it doesn't fit."""
        role = data.get("role")
        content = data.get("content")
        if role not in VALID_ROLES or not isinstance(content, str):
            return None
        return cls(role=role, content=content)


class LoadResult(str, enum.Enum):
    LOADED = "loaded"
    MISSING = "missing"
    INVALID = "invalid"


class ConversationHistoryError(ValueError):
    """Raised internally when a conversation file can't be interpreted."""


class ConversationStore:
    """Ordered message log owned by a single provider client."""

    def __init__(self, messages: Optional[Iterable[ConversationMessage]] = None) -> None:
        self._messages: List[ConversationMessage] = list(messages or [])

    def __len__(self) -> int:
        return len(self._messages)

    def append(self, role: str, content: str) -> ConversationMessage:
        if role not in VALID_ROLES:
            raise ValueError(f"Unsupported role '{role}'")
        message = ConversationMessage(role=role, content=content)
        self._messages.append(message)
        return message

    def extend(self, messages: Iterable[ConversationMessage]) -> None:
        self._messages.extend(messages)

    def clear(self) -> None:
        self._messages.clear()

    def snapshot(self) -> List[ConversationMessage]:
        """Return an independent copy of the current history."""
        return list(self._messages)

    def preview(self, size: int = PREVIEW_SIZE) -> List[dict]:
        if size <= 0:
            return []
        return [message.to_dict() for message in self._messages[-size:]]

    def merged_with(
        self, messages: Iterable[ConversationMessage]
    ) -> List[ConversationMessage]:
        """Stored history followed by ``messages``, in order."""
        return self.snapshot() + list(messages)

    def load(self, path: Union[str, Path]) -> LoadResult:
        """Replace the history with the contents of a conversation file.

        A missing file leaves the history untouched. A file that can't be
        parsed resets the history to empty. Neither case raises.
        """
        file_path = Path(path)
        if not file_path.exists():
            logger.info("Conversation file %s not found; history unchanged", file_path)
            return LoadResult.MISSING

        try:
            with file_path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
            messages = parse_conversation_file(data)
        except (OSError, ValueError) as exc:
            logger.warning(
                "Failed to load conversation file %s: %s; history reset", file_path, exc
            )
            self._messages = []
            return LoadResult.INVALID

        self._messages = messages
        logger.info(
            "Loaded %d conversation messages from %s", len(messages), file_path
        )
        return LoadResult.LOADED


def parse_conversation_file(data: Any) -> List[ConversationMessage]:
    """Convert a decoded conversation file into canonical messages."""
    if not isinstance(data, Mapping):
        raise ConversationHistoryError("conversation file must be a JSON object")

    fmt = str(data.get("format") or "canonical").strip().lower()
    if fmt not in {"canonical", "native"}:
        raise ConversationHistoryError(f"unknown conversation format '{fmt}'")

    if "conversation_history" in data:
        history = data["conversation_history"]
    else:
        history = data.get("history", [])
    if not isinstance(history, list):
        raise ConversationHistoryError("conversation history must be a list")

    messages: List[ConversationMessage] = []
    for index, entry in enumerate(history):
        if not isinstance(entry, Mapping):
            logger.warning("Skipping conversation entry %d: not an object", index)
            continue
        message = _native_entry(entry) if fmt == "native" else ConversationMessage.from_mapping(entry)
        if message is None:
            logger.debug("Skipping conversation entry %d", index)
            continue
        messages.append(message)
    return messages


def _native_entry(entry: Mapping[str, Any]) -> Optional[ConversationMessage]:
    role = NATIVE_ROLE_MAP.get(str(entry.get("role") or ""))
    if role is None:
        return None
    parts = entry.get("parts")
    if not isinstance(parts, list):
        return None
    texts = [
        part["text"]
        for part in parts
        if isinstance(part, Mapping) and isinstance(part.get("text"), str)
    ]
    text = "".join(texts)
    if not text:
        return None
    return ConversationMessage(role=role, content=text)
