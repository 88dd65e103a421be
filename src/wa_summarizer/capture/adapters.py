"""Event source adapters for the capture pipeline.

Converts the two host input channels (posted notifications and
accessibility window snapshots) into RawObservations. Adapters are pure:
malformed or foreign events yield nothing and never raise.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from wa_summarizer.capture.models import (
    AccessibilityEvent,
    AccessibilityNode,
    InboundEvent,
    NotificationEvent,
    RawObservation,
    SourceKind,
)
from wa_summarizer.constants import (
    DEFAULT_ALLOWED_PACKAGES,
    MAX_OBSERVATION_TEXT_LENGTH,
    MAX_TREE_DEPTH,
    SELF_SENDER,
    SENDER_SEARCH_DEPTH,
)
from wa_summarizer.logging import get_logger

log = get_logger("wa_summarizer.capture.adapters")

# Host bridge event type tags
EVENT_NOTIFICATION = "notification"
EVENT_ACCESSIBILITY = "accessibility"


class AdapterParseFailure(ValueError):
    """Raised when a host payload cannot be turned into an event."""


# ---------------------------------------------------------------------------
# Sender inference
# ---------------------------------------------------------------------------


def determine_sender(
    ancestors: Sequence[AccessibilityNode],
    max_depth: int = SENDER_SEARCH_DEPTH,
) -> str:
    """Infer the sender of a message bubble from its ancestors.

    ``ancestors`` is ordered root first, so the walk starts from the end
    (the direct parent). The first ancestor whose content description
    mentions "message" supplies the sender: the text before its first
    comma. Bubbles without such an ancestor are the user's own.
    """
    for parent in list(reversed(ancestors))[:max_depth]:
        description = parent.content_description or ""
        if "message" in description.lower():
            return description.split(",", 1)[0].strip()
    return SELF_SENDER


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class EventSourceAdapter:
    """Normalizes notification and accessibility events into observations."""

    def __init__(
        self,
        *,
        allowed_packages: Iterable[str] = DEFAULT_ALLOWED_PACKAGES,
        max_text_length: int = MAX_OBSERVATION_TEXT_LENGTH,
        sender_search_depth: int = SENDER_SEARCH_DEPTH,
        max_tree_depth: int = MAX_TREE_DEPTH,
    ) -> None:
        """Initialize the adapter.

        Args:
            allowed_packages: Package ids whose events are captured.
            max_text_length: Node text at or above this length is skipped.
            sender_search_depth: Ancestors inspected when inferring a sender.
            max_tree_depth: Nodes nested deeper than this are not visited.
        """
        self._allowed_packages = frozenset(allowed_packages)
        self._max_text_length = max_text_length
        self._sender_search_depth = sender_search_depth
        self._max_tree_depth = max_tree_depth

    def is_allowed(self, package_id: str | None) -> bool:
        """Check whether events from a package are captured."""
        return package_id in self._allowed_packages

    def normalize(self, event: InboundEvent) -> list[RawObservation]:
        """Convert any inbound event to zero or more observations."""
        if isinstance(event, NotificationEvent):
            observation = self.normalize_notification(event)
            return [observation] if observation is not None else []
        if isinstance(event, AccessibilityEvent):
            return self.normalize_accessibility(event)
        log.debug("unknown_event_dropped", event_type=type(event).__name__)
        return []

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def normalize_notification(self, event: NotificationEvent) -> RawObservation | None:
        """Convert a posted notification to an observation.

        Returns None for foreign packages and for notifications missing a
        title or text.
        """
        if not self.is_allowed(event.package_id):
            log.debug("notification_ignored_package", package_id=event.package_id)
            return None

        if event.title is None or event.text is None:
            log.debug("notification_missing_fields", package_id=event.package_id)
            return None

        if not event.text:
            return None

        return RawObservation(
            source_kind=SourceKind.NOTIFICATION,
            title=event.title,
            body=event.text,
            subtext=event.sub_text or "",
            package_id=event.package_id,
        )

    # ------------------------------------------------------------------
    # Accessibility snapshots
    # ------------------------------------------------------------------

    def normalize_accessibility(self, event: AccessibilityEvent) -> list[RawObservation]:
        """Convert an accessibility snapshot into one observation per text node."""
        if not self.is_allowed(event.package_id):
            return []
        if event.root is None:
            return []

        observations: list[RawObservation] = []
        try:
            self._collect(event.root, (), event.package_id, observations)
        except (AttributeError, TypeError) as exc:
            log.debug("accessibility_tree_malformed", error=str(exc))
            return []

        log.debug(
            "accessibility_tree_scanned",
            package_id=event.package_id,
            observation_count=len(observations),
        )
        return observations

    def _collect(
        self,
        node: AccessibilityNode,
        ancestors: tuple[AccessibilityNode, ...],
        package_id: str,
        out: list[RawObservation],
    ) -> None:
        if len(ancestors) > self._max_tree_depth:
            return

        text = node.text or ""
        if text and len(text) < self._max_text_length:
            out.append(
                RawObservation(
                    source_kind=SourceKind.ACCESSIBILITY_TREE,
                    title=determine_sender(ancestors, self._sender_search_depth),
                    body=text,
                    subtext=node.content_description or "",
                    package_id=package_id,
                )
            )

        child_ancestors = (*ancestors, node)
        for child in node.children:
            self._collect(child, child_ancestors, package_id, out)


# ---------------------------------------------------------------------------
# Host payload parsing
# ---------------------------------------------------------------------------


def parse_event(payload: dict[str, Any]) -> InboundEvent:
    """Build an inbound event from a host bridge JSON payload.

    Raises:
        AdapterParseFailure: If the payload has an unknown type or bad shape.
    """
    if not isinstance(payload, dict):
        raise AdapterParseFailure("event payload must be an object")

    event_type = payload.get("type")
    package_id = payload.get("packageId")
    if not isinstance(package_id, str):
        raise AdapterParseFailure("packageId is required")

    if event_type == EVENT_NOTIFICATION:
        return NotificationEvent(
            package_id=package_id,
            title=_str_or_none(payload.get("title")),
            text=_str_or_none(payload.get("text")),
            sub_text=_str_or_none(payload.get("subText")),
        )

    if event_type == EVENT_ACCESSIBILITY:
        raw_root = payload.get("root")
        try:
            root = AccessibilityNode.from_dict(raw_root) if raw_root is not None else None
        except (TypeError, RecursionError) as exc:
            raise AdapterParseFailure(f"invalid accessibility tree: {exc}") from exc
        return AccessibilityEvent(package_id=package_id, root=root)

    raise AdapterParseFailure(f"unknown event type: {event_type!r}")


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None
