"""Capture pipeline orchestrator.

Coordinates the capture flow for every inbound host event:
1. Normalize the event into RawObservations (EventSourceAdapter)
2. Drop repeats (Deduplicator)
3. Append first sightings to the MessageQueue
"""

from __future__ import annotations

from typing import Any

from wa_summarizer.capture.adapters import AdapterParseFailure, EventSourceAdapter, parse_event
from wa_summarizer.capture.dedup import Deduplicator
from wa_summarizer.capture.models import InboundEvent, Message
from wa_summarizer.inbox.message_queue import MessageQueue
from wa_summarizer.logging import get_logger

log = get_logger("wa_summarizer.capture.pipeline")


class CapturePipeline:
    """Turns host events into deduplicated queue entries."""

    def __init__(
        self,
        queue: MessageQueue,
        *,
        adapter: EventSourceAdapter | None = None,
        deduplicator: Deduplicator | None = None,
    ) -> None:
        self._queue = queue
        self._adapter = adapter or EventSourceAdapter()
        self._dedup = deduplicator or Deduplicator()

    @property
    def deduplicator(self) -> Deduplicator:
        return self._dedup

    async def handle(self, event: InboundEvent) -> list[Message]:
        """Process one inbound event.

        Returns:
            Messages appended to the queue (empty when everything was
            filtered or already seen).
        """
        observations = self._adapter.normalize(event)
        if not observations:
            return []

        appended: list[Message] = []
        for observation in observations:
            message = self._dedup.accept(observation)
            if message is None:
                continue
            await self._queue.append(message)
            appended.append(message)

        if appended:
            log.info(
                "messages_captured",
                source=observations[0].source_kind.value,
                package_id=observations[0].package_id,
                observed=len(observations),
                appended=len(appended),
            )
        return appended

    async def handle_payload(self, payload: dict[str, Any]) -> list[Message]:
        """Parse a host bridge payload and process it; bad payloads are dropped."""
        try:
            event = parse_event(payload)
        except AdapterParseFailure as exc:
            log.debug("event_payload_dropped", error=str(exc))
            return []
        return await self.handle(event)
