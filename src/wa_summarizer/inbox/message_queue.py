"""In-memory message queue with durable mirroring and a change stream.

The queue is the single piece of shared mutable capture state. Mutations
(append, clear) are serialized by one lock and each publishes an immutable
snapshot, so readers never observe a partially applied change. The durable
copy is a best-effort mirror written by a background task; it is only read
back on startup.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator

from wa_summarizer.capture.models import Message
from wa_summarizer.constants import UNREAD_MESSAGES_KEY
from wa_summarizer.inbox.store import JsonFileStore, PersistenceError
from wa_summarizer.logging import get_logger

log = get_logger("wa_summarizer.inbox.message_queue")

Snapshot = tuple[Message, ...]

_NOTHING = object()


class ChangeSubscription:
    """Async iterator over queue snapshots.

    Holds at most one undelivered snapshot: a slow consumer skips straight
    to the newest state instead of replaying every intermediate one.
    """

    def __init__(self, owner: MessageQueue, initial: Snapshot) -> None:
        self._owner = owner
        self._pending: object = initial
        self._ready = asyncio.Event()
        self._ready.set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _offer(self, snapshot: Snapshot) -> None:
        if self._closed:
            return
        self._pending = snapshot
        self._ready.set()

    def close(self) -> None:
        """Stop iteration; pending snapshots are dropped."""
        if self._closed:
            return
        self._closed = True
        self._pending = _NOTHING
        self._ready.set()
        self._owner._unsubscribe(self)

    def __aiter__(self) -> ChangeSubscription:
        return self

    async def __anext__(self) -> Snapshot:
        while True:
            if self._pending is not _NOTHING:
                snapshot = self._pending
                self._pending = _NOTHING
                self._ready.clear()
                return snapshot  # type: ignore[return-value]
            if self._closed:
                raise StopAsyncIteration
            await self._ready.wait()


class MessageQueue:
    """Ordered store of captured messages.

    Args:
        store: Durable store for the snapshot mirror. When None the queue is
            memory-only.
        key: Store key holding the serialized snapshot.
    """

    def __init__(
        self,
        store: JsonFileStore | None = None,
        *,
        key: str = UNREAD_MESSAGES_KEY,
    ) -> None:
        self._store = store
        self._key = key
        self._messages: list[Message] = []
        self._snapshot: Snapshot = ()
        self._lock = asyncio.Lock()
        self._subscribers: list[ChangeSubscription] = []

        self._pending_write: object = _NOTHING
        self._write_wake = asyncio.Event()
        self._write_idle = asyncio.Event()
        self._write_idle.set()
        self._writer_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> Snapshot:
        """Return the current messages in insertion order."""
        return self._snapshot

    def __len__(self) -> int:
        return len(self._snapshot)

    def subscribe(self) -> ChangeSubscription:
        """Register a change stream starting from the current snapshot."""
        subscription = ChangeSubscription(self, self._snapshot)
        self._subscribers.append(subscription)
        return subscription

    async def changes(self) -> AsyncIterator[Snapshot]:
        """Yield the current snapshot, then one per mutation."""
        subscription = self.subscribe()
        try:
            async for snapshot in subscription:
                yield snapshot
        finally:
            subscription.close()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def append(self, message: Message) -> None:
        """Append a message; the durable write happens in the background."""
        async with self._lock:
            self._messages.append(message)
            snapshot = tuple(self._messages)
            self._apply(snapshot)
        log.debug(
            "message_appended",
            queue_size=len(snapshot),
            chat_name=message.chat_name,
            text_length=len(message.text),
        )

    async def clear(self) -> None:
        """Drop every message and remove the durable snapshot."""
        async with self._lock:
            self._messages.clear()
            self._apply(())
        log.info("queue_cleared")
        await self.flush()

    def _apply(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot
        for subscription in list(self._subscribers):
            subscription._offer(snapshot)
        self._schedule_write(snapshot)

    def _unsubscribe(self, subscription: ChangeSubscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    # ------------------------------------------------------------------
    # Durable mirror
    # ------------------------------------------------------------------

    async def restore(self) -> int:
        """Load the last durable snapshot into an empty queue.

        Unreadable or corrupt data leaves the queue empty.

        Returns:
            Number of messages restored.
        """
        if self._store is None:
            return 0

        try:
            raw = await asyncio.to_thread(self._store.get, self._key)
        except PersistenceError as exc:
            log.warning("queue_restore_failed", key=self._key, error=str(exc))
            return 0
        if raw is None:
            return 0

        try:
            restored = _deserialize(raw)
        except (ValueError, TypeError, KeyError, AttributeError, RecursionError) as exc:
            log.warning("queue_snapshot_corrupt", key=self._key, error=str(exc))
            return 0

        async with self._lock:
            if self._messages:
                log.warning("queue_restore_skipped_not_empty", queue_size=len(self._messages))
                return 0
            self._messages.extend(restored)
            self._snapshot = tuple(self._messages)
            for subscription in list(self._subscribers):
                subscription._offer(self._snapshot)

        log.info("queue_restored", queue_size=len(restored))
        return len(restored)

    def _schedule_write(self, snapshot: Snapshot) -> None:
        if self._store is None:
            return
        self._pending_write = snapshot
        self._write_idle.clear()
        self._write_wake.set()
        if self._writer_task is None or self._writer_task.done():
            self._writer_task = asyncio.get_running_loop().create_task(self._writer_loop())

    async def _writer_loop(self) -> None:
        while True:
            await self._write_wake.wait()
            self._write_wake.clear()
            while self._pending_write is not _NOTHING:
                snapshot = self._pending_write
                self._pending_write = _NOTHING
                await self._persist(snapshot)  # type: ignore[arg-type]
            self._write_idle.set()

    async def _persist(self, snapshot: Snapshot) -> None:
        assert self._store is not None
        try:
            if snapshot:
                await asyncio.to_thread(self._store.set, self._key, _serialize(snapshot))
            else:
                await asyncio.to_thread(self._store.delete, self._key)
        except (PersistenceError, ValueError) as exc:
            log.warning("queue_persist_failed", key=self._key, error=str(exc))

    async def flush(self) -> None:
        """Wait until every scheduled durable write has completed."""
        await self._write_idle.wait()

    async def aclose(self) -> None:
        """Flush pending writes, stop the writer and end all subscriptions."""
        await self.flush()
        if self._writer_task is not None:
            self._writer_task.cancel()
            try:
                await self._writer_task
            except asyncio.CancelledError:
                pass
            self._writer_task = None
        for subscription in list(self._subscribers):
            subscription.close()


def _serialize(snapshot: Snapshot) -> str:
    return json.dumps([message.to_dict() for message in snapshot])


def _deserialize(raw: str) -> list[Message]:
    data = json.loads(raw)
    if not isinstance(data, list):
        raise TypeError(f"expected a JSON array, got {type(data).__name__}")
    return [Message.from_dict(item) for item in data]
