"""Debounced summarization scheduler.

Watches the queue's change stream and drives an explicit state machine:

    IDLE       -- non-empty change -->  PENDING (arm timer)
    PENDING    -- change          -->  PENDING (restart timer)
    PENDING    -- timer elapses   -->  IN_FLIGHT (request with current snapshot)
    IN_FLIGHT  -- change          -->  PENDING (cancel request, arm timer)
    IN_FLIGHT  -- request done    -->  IDLE (surface result)
    any        -- queue emptied   -->  IDLE (cancel everything, clear result)

Every issued request gets a generation number. Cancelling a request bumps
the generation, so a late completion from an abandoned call is recognised
as stale and dropped instead of being surfaced. At most one request is
outstanding at any time.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from enum import StrEnum
from typing import Protocol

from wa_summarizer.constants import DEBOUNCE_SECONDS, NO_MESSAGES_TEXT
from wa_summarizer.inbox.message_queue import ChangeSubscription, MessageQueue, Snapshot
from wa_summarizer.logging import get_logger
from wa_summarizer.summarizer.client import SummarizationClient, SummaryResult
from wa_summarizer.summarizer.errors import SummarizationError

log = get_logger("wa_summarizer.summarizer.scheduler")


class SchedulerState(StrEnum):
    """States of one summarization cycle."""

    IDLE = "idle"
    PENDING = "pending"
    IN_FLIGHT = "in_flight"


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


CallLater = Callable[[float, Callable[[], None]], TimerHandle]

# Receives each surfaced result; None means the previous result was cleared.
ResultListener = Callable[[SummaryResult | None], None]


class SummaryScheduler:
    """Coalesces queue changes into at most one in-flight summary request."""

    def __init__(
        self,
        queue: MessageQueue,
        client: SummarizationClient,
        *,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        call_later: CallLater | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            queue: Source of change notifications and request snapshots.
            client: Summarization service.
            debounce_seconds: Quiet period required before a request fires.
            call_later: Timer factory ``(delay, callback) -> handle``;
                defaults to the running loop's ``call_later``.
        """
        if debounce_seconds < 0:
            raise ValueError("debounce_seconds must be >= 0")
        self._queue = queue
        self._client = client
        self._debounce = debounce_seconds
        self._call_later = call_later

        self._state = SchedulerState.IDLE
        self._idle = asyncio.Event()
        self._idle.set()
        self._timer: TimerHandle | None = None
        self._request: asyncio.Task[None] | None = None
        self._generation = 0
        self._latest: SummaryResult | None = None
        self._listeners: list[ResultListener] = []

        self._subscription: ChangeSubscription | None = None
        self._consumer: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Public status surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def latest_result(self) -> SummaryResult | None:
        """The result currently surfaced, if any."""
        return self._latest

    @property
    def current_request(self) -> asyncio.Task[None] | None:
        """The outstanding request task, if any."""
        return self._request

    @property
    def is_running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    def add_listener(self, listener: ResultListener) -> None:
        """Register a presentation-layer callback for surfaced results."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Subscribe to the queue and start consuming its change stream.

        Must be called from within a running event loop.
        """
        if self.is_running:
            return
        # Subscribe synchronously so the current state is the first value seen.
        self._subscription = self._queue.subscribe()
        self._consumer = asyncio.get_running_loop().create_task(self._consume(self._subscription))
        log.info("summary_scheduler_started", debounce_seconds=self._debounce)

    async def stop(self) -> None:
        """Stop consuming changes and abandon any timer or request."""
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        self._cancel_timer()
        request = self._cancel_request()
        consumer, self._consumer = self._consumer, None
        for task in (consumer, request):
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._set_state(SchedulerState.IDLE)
        log.info("summary_scheduler_stopped")

    async def wait_idle(self) -> None:
        """Wait until no timer is armed and no request is outstanding."""
        await self._idle.wait()

    async def _consume(self, subscription: ChangeSubscription) -> None:
        async for snapshot in subscription:
            self.on_queue_changed(snapshot)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on_queue_changed(self, snapshot: Snapshot) -> None:
        """Feed one queue snapshot into the state machine."""
        if not snapshot:
            self._reset()
            return

        if self._state is SchedulerState.IN_FLIGHT:
            self._cancel_request()
            log.info("summary_request_superseded", queue_size=len(snapshot))

        self._arm_timer()
        self._set_state(SchedulerState.PENDING)

    def summarize_now(self) -> None:
        """Issue a request immediately, bypassing the debounce timer.

        An empty queue surfaces a notice instead of calling the service.
        """
        self._cancel_timer()
        self._cancel_request()
        snapshot = self._queue.snapshot()
        if not snapshot:
            self._set_state(SchedulerState.IDLE)
            self._surface(SummaryResult.success(NO_MESSAGES_TEXT))
            return
        log.info("summary_manual_trigger", queue_size=len(snapshot))
        self._issue(snapshot)

    def _on_timer(self) -> None:
        self._timer = None
        if self._state is not SchedulerState.PENDING:
            return
        self._issue(self._queue.snapshot())

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _set_state(self, state: SchedulerState) -> None:
        self._state = state
        if state is SchedulerState.IDLE:
            self._idle.set()
        else:
            self._idle.clear()

    def _arm_timer(self) -> None:
        self._cancel_timer()
        call_later = self._call_later or asyncio.get_running_loop().call_later
        self._timer = call_later(self._debounce, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _issue(self, snapshot: Snapshot) -> None:
        if not snapshot:
            self._set_state(SchedulerState.IDLE)
            return
        self._generation += 1
        self._set_state(SchedulerState.IN_FLIGHT)
        self._request = asyncio.get_running_loop().create_task(
            self._run_request(self._generation, snapshot)
        )
        log.info(
            "summary_request_issued",
            generation=self._generation,
            queue_size=len(snapshot),
        )

    def _cancel_request(self) -> asyncio.Task[None] | None:
        """Abandon the outstanding request without waiting for it."""
        request, self._request = self._request, None
        if request is None:
            return None
        self._generation += 1
        if not request.done():
            request.cancel()
        log.debug("summary_request_cancelled", generation=self._generation)
        return request

    async def _run_request(self, generation: int, snapshot: Snapshot) -> None:
        try:
            text = await self._client.summarize(snapshot)
            result = SummaryResult.success(text)
        except SummarizationError as exc:
            log.warning(
                "summary_request_failed",
                generation=generation,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            result = SummaryResult.failure(exc)
        except asyncio.CancelledError:
            log.debug("summary_request_abandoned", generation=generation)
            raise
        except Exception as exc:
            log.exception("summary_request_crashed", generation=generation)
            result = SummaryResult.failure(f"Unexpected error: {exc}")
        self._complete(generation, result)

    def _complete(self, generation: int, result: SummaryResult) -> None:
        if generation != self._generation or self._state is not SchedulerState.IN_FLIGHT:
            log.debug("summary_result_discarded", generation=generation, current=self._generation)
            return
        self._request = None
        self._set_state(SchedulerState.IDLE)
        log.info("summary_reported", generation=generation, ok=result.ok)
        self._surface(result)

    def _reset(self) -> None:
        self._cancel_timer()
        self._cancel_request()
        self._set_state(SchedulerState.IDLE)
        if self._latest is not None:
            self._surface(None)

    def _surface(self, result: SummaryResult | None) -> None:
        self._latest = result
        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception:
                log.exception("summary_listener_failed")
