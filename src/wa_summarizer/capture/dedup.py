"""Deduplication of repeated observations.

The accessibility source re-reports every visible bubble on each window
change, and the host may redeliver a notification. Each observation is
reduced to an identity key and only the first sighting of a key becomes a
Message. Keys are per channel: notifications are keyed on their title and
tree nodes on their content description, so the same text seen through both
channels is captured twice.
"""

from __future__ import annotations

import hashlib
import threading
from collections import OrderedDict
from collections.abc import Callable
from datetime import datetime

from wa_summarizer.capture.models import Message, RawObservation, SourceKind
from wa_summarizer.constants import ACCESSIBILITY_CHAT_NAME
from wa_summarizer.logging import get_logger

log = get_logger("wa_summarizer.capture.dedup")


def compute_identity_key(observation: RawObservation) -> str:
    """Return a stable hash of (identity hint, text)."""
    payload = f"{observation.identity_hint}\n{observation.body}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def build_message(observation: RawObservation, timestamp: datetime) -> Message:
    """Construct the Message an observation stands for."""
    if observation.source_kind is SourceKind.NOTIFICATION:
        return Message(
            sender=observation.title,
            text=observation.body,
            timestamp=timestamp,
            chat_name=observation.title,
        )
    return Message(
        sender=observation.title,
        text=observation.body,
        timestamp=timestamp,
        chat_name=ACCESSIBILITY_CHAT_NAME,
    )


class Deduplicator:
    """Suppresses observations whose identity key was already seen.

    The recency set is unbounded unless ``max_keys`` is given, in which case
    the least recently seen key is evicted first. Safe to call from both
    observation sources concurrently.
    """

    def __init__(
        self,
        *,
        max_keys: int | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        if max_keys is not None and max_keys < 1:
            raise ValueError("max_keys must be >= 1")
        self._max_keys = max_keys
        self._clock = clock
        self._seen: OrderedDict[str, None] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def seen_count(self) -> int:
        with self._lock:
            return len(self._seen)

    def accept(self, observation: RawObservation) -> Message | None:
        """Return a Message for a first sighting, None for a repeat."""
        key = compute_identity_key(observation)
        with self._lock:
            if key in self._seen:
                self._seen.move_to_end(key)
                return None
            self._seen[key] = None
            if self._max_keys is not None and len(self._seen) > self._max_keys:
                self._seen.popitem(last=False)
        return build_message(observation, self._clock())

    def reset(self) -> None:
        """Forget every key seen so far."""
        with self._lock:
            self._seen.clear()
        log.debug("dedup_reset")
