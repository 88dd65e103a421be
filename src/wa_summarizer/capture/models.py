"""Data models for the capture pipeline.

All models are plain dataclasses with to_dict/from_dict where they cross
the host bridge or the durable store. Serialized field names follow the
host's camelCase so stored snapshots stay readable by the companion app.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from wa_summarizer.constants import DEFAULT_CHAT_NAME

# ------------------------------------------------------------------
# Captured message
# ------------------------------------------------------------------


@dataclass(frozen=True)
class Message:
    """A single captured chat message."""

    sender: str
    text: str
    timestamp: datetime = field(default_factory=datetime.now)
    chat_name: str = DEFAULT_CHAT_NAME

    def __str__(self) -> str:
        return f"{self.sender}: {self.text}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "sender": self.sender,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
            "chatName": self.chat_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        """Rebuild a message from its stored form.

        Raises:
            KeyError: If sender or text is missing.
            TypeError / ValueError: If a field has the wrong shape.
        """
        sender = data["sender"]
        text = data["text"]
        if not isinstance(sender, str) or not isinstance(text, str):
            raise TypeError("sender and text must be strings")
        raw_ts = data.get("timestamp")
        timestamp = datetime.fromisoformat(raw_ts) if raw_ts else datetime.now()
        chat_name = data.get("chatName") or DEFAULT_CHAT_NAME
        return cls(sender=sender, text=text, timestamp=timestamp, chat_name=str(chat_name))


# ------------------------------------------------------------------
# Raw observations
# ------------------------------------------------------------------


class SourceKind(StrEnum):
    """Which input channel produced an observation."""

    NOTIFICATION = "notification"
    ACCESSIBILITY_TREE = "accessibility_tree"


@dataclass(frozen=True)
class RawObservation:
    """A capture event before identity/dedup resolution.

    For notifications ``title`` is the notification title (sender or chat)
    and ``subtext`` its sub-text. For accessibility nodes ``title`` is the
    inferred sender and ``subtext`` the node's content description.
    """

    source_kind: SourceKind
    title: str
    body: str
    subtext: str
    package_id: str

    @property
    def identity_hint(self) -> str:
        """The part of the dedup key that locates the message."""
        if self.source_kind is SourceKind.ACCESSIBILITY_TREE:
            return self.subtext
        return self.title


# ------------------------------------------------------------------
# Inbound host events
# ------------------------------------------------------------------


@dataclass
class AccessibilityNode:
    """One node of an accessibility snapshot."""

    class_name: str = ""
    text: str | None = None
    content_description: str | None = None
    children: Sequence[AccessibilityNode] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AccessibilityNode:
        if not isinstance(data, dict):
            raise TypeError(f"node must be an object, got {type(data).__name__}")
        raw_children = data.get("children") or []
        if not isinstance(raw_children, list):
            raise TypeError("children must be a list")
        return cls(
            class_name=str(data.get("className") or ""),
            text=_optional_str(data.get("text")),
            content_description=_optional_str(data.get("contentDescription")),
            children=[cls.from_dict(child) for child in raw_children],
        )


@dataclass(frozen=True)
class NotificationEvent:
    """A posted notification as reported by the host."""

    package_id: str
    title: str | None = None
    text: str | None = None
    sub_text: str | None = None


@dataclass(frozen=True)
class AccessibilityEvent:
    """A window-content snapshot as reported by the host."""

    package_id: str
    root: AccessibilityNode | None = None


InboundEvent = NotificationEvent | AccessibilityEvent


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)
