"""Main entry point for wa-summarizer.

Runs the capture pipeline and scheduler behind a line-oriented host bridge:
the companion app writes one JSON command per line on stdin and reads
summary updates as JSON lines on stdout.
"""

import asyncio
import json
import sys
from typing import Any, TextIO

from wa_summarizer.capture.adapters import (
    EVENT_ACCESSIBILITY,
    EVENT_NOTIFICATION,
    EventSourceAdapter,
)
from wa_summarizer.capture.dedup import Deduplicator
from wa_summarizer.capture.pipeline import CapturePipeline
from wa_summarizer.config import Settings, get_settings
from wa_summarizer.inbox.message_queue import MessageQueue
from wa_summarizer.inbox.store import JsonFileStore, PersistenceError
from wa_summarizer.logging import get_logger, setup_logging
from wa_summarizer.summarizer.client import GeminiSummarizer, SummaryResult
from wa_summarizer.summarizer.credentials import CredentialStore
from wa_summarizer.summarizer.scheduler import SummaryScheduler

log = get_logger("wa_summarizer.main")

COMMAND_CLEAR = "clear"
COMMAND_SUMMARIZE = "summarize"
COMMAND_SET_API_KEY = "set_api_key"


class HostBridge:
    """Routes host commands to the pipeline, queue, scheduler and credentials."""

    def __init__(
        self,
        *,
        pipeline: CapturePipeline,
        queue: MessageQueue,
        scheduler: SummaryScheduler,
        credentials: CredentialStore,
        output: TextIO | None = None,
    ) -> None:
        self._pipeline = pipeline
        self._queue = queue
        self._scheduler = scheduler
        self._credentials = credentials
        self._output = output or sys.stdout

    def write_result(self, result: SummaryResult | None) -> None:
        """Emit one summary update line."""
        payload = result.to_dict() if result is not None else {"summary": None, "error": None}
        self._output.write(json.dumps(payload) + "\n")
        self._output.flush()

    async def dispatch(self, command: dict[str, Any]) -> None:
        """Handle one decoded host command."""
        command_type = command.get("type")

        if command_type in (EVENT_NOTIFICATION, EVENT_ACCESSIBILITY):
            await self._pipeline.handle_payload(command)
        elif command_type == COMMAND_CLEAR:
            await self._queue.clear()
        elif command_type == COMMAND_SUMMARIZE:
            self._scheduler.summarize_now()
        elif command_type == COMMAND_SET_API_KEY:
            value = command.get("value")
            if not isinstance(value, str):
                log.warning("set_api_key_invalid")
                return
            try:
                await asyncio.to_thread(self._credentials.set_api_key, value)
            except PersistenceError as exc:
                log.warning("set_api_key_failed", error=str(exc))
        else:
            log.debug("unknown_command_dropped", command_type=command_type)

    async def serve(self, stream: TextIO) -> None:
        """Read commands until end of input."""
        while True:
            line = await asyncio.to_thread(stream.readline)
            if not line:
                return
            line = line.strip()
            if not line:
                continue
            try:
                command = json.loads(line)
            except (json.JSONDecodeError, RecursionError) as exc:
                log.warning("command_not_json", error=str(exc))
                continue
            if not isinstance(command, dict):
                log.warning("command_not_object")
                continue
            await self.dispatch(command)


def build_components(
    settings: Settings,
) -> tuple[CapturePipeline, MessageQueue, SummaryScheduler, CredentialStore]:
    """Wire the capture and summarization components from settings."""
    store = JsonFileStore(settings.data_dir)
    queue = MessageQueue(store)
    credentials = CredentialStore(store, default_key=settings.gemini_api_key)
    summarizer = GeminiSummarizer(
        credentials,
        model=settings.gemini_model,
        api_base=settings.gemini_api_base,
        timeout=settings.summarize_timeout,
        max_messages=settings.summary_max_messages,
    )
    scheduler = SummaryScheduler(queue, summarizer, debounce_seconds=settings.debounce_seconds)
    pipeline = CapturePipeline(
        queue,
        adapter=EventSourceAdapter(
            allowed_packages=settings.allowed_packages,
            max_text_length=settings.max_observation_text_length,
            sender_search_depth=settings.sender_search_depth,
        ),
        deduplicator=Deduplicator(max_keys=settings.dedup_max_keys),
    )
    return pipeline, queue, scheduler, credentials


async def main() -> None:
    """Main application entry point."""
    setup_logging()

    settings = get_settings()
    log.info(
        "starting_wa_summarizer",
        environment=settings.environment,
        data_dir=settings.data_dir,
        model=settings.gemini_model,
    )

    pipeline, queue, scheduler, credentials = build_components(settings)
    restored = await queue.restore()
    log.info("queue_initialized", restored=restored, api_key_present=credentials.has_key)

    bridge = HostBridge(
        pipeline=pipeline,
        queue=queue,
        scheduler=scheduler,
        credentials=credentials,
    )
    scheduler.add_listener(bridge.write_result)
    scheduler.start()

    try:
        await bridge.serve(sys.stdin)
        # Let the scheduler see the last change, then give it time to report.
        await asyncio.sleep(0)
        try:
            await asyncio.wait_for(
                scheduler.wait_idle(),
                timeout=settings.debounce_seconds + settings.summarize_timeout,
            )
        except TimeoutError:
            log.warning("final_summary_timed_out")
    except KeyboardInterrupt:
        log.info("shutdown_requested")
    finally:
        await scheduler.stop()
        await queue.aclose()
        log.info("wa_summarizer_stopped")


def run() -> None:
    """Run the application."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
