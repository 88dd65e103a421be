"""Gemini summarization client.

Sends the captured chat to the Gemini ``generateContent`` REST endpoint and
returns the trimmed summary text. Calls are plain coroutines, so cancelling
the awaiting task abandons the request without blocking the caller.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from wa_summarizer.capture.models import Message
from wa_summarizer.constants import (
    DEFAULT_GEMINI_MODEL,
    GEMINI_API_BASE,
    NO_MESSAGES_TEXT,
    SUMMARIZE_TIMEOUT_SECONDS,
)
from wa_summarizer.logging import get_logger
from wa_summarizer.summarizer.credentials import CredentialStore
from wa_summarizer.summarizer.errors import (
    MalformedResponseError,
    MissingCredentialError,
    SummarizationError,
    TransportError,
)

log = get_logger("wa_summarizer.summarizer.client")

PROMPT_TEMPLATE = """\
You are a helpful assistant integrated into a WhatsApp chat.
Your task is to summarize the following chat conversation in two or three concise sentences.
Focus only on the most crucial information, such as plans being made, important questions asked, or key decisions.
Ignore casual chit-chat, jokes, memes, and off-topic conversations.
The goal is to provide a quick "at-a-glance" update for someone who doesn't want to read the whole conversation.

Here is the chat history:
---
{chat_history}
---

Provide the summary now."""


# ---------------------------------------------------------------------------
# Result surfaced to the presentation layer
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SummaryResult:
    """Outcome of one summarization request: text or an error description."""

    text: str | None = None
    error: str | None = None

    @classmethod
    def success(cls, text: str) -> SummaryResult:
        return cls(text=text)

    @classmethod
    def failure(cls, error: str | SummarizationError) -> SummaryResult:
        return cls(error=str(error))

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def display_text(self) -> str:
        """Text to show the user."""
        if self.error is not None:
            return f"Error: {self.error}"
        return self.text or ""

    def to_dict(self) -> dict[str, Any]:
        return {"summary": self.text, "error": self.error}


# ---------------------------------------------------------------------------
# Client contract
# ---------------------------------------------------------------------------


class SummarizationClient(Protocol):
    """Contract consumed by the scheduler."""

    async def summarize(self, messages: Sequence[Message]) -> str:
        """Return a summary or raise a SummarizationError subclass."""
        ...


def build_prompt(messages: Sequence[Message]) -> str:
    """Render messages as ``sender: text`` lines inside the instruction template."""
    chat_history = "\n".join(f"{message.sender}: {message.text}" for message in messages)
    return PROMPT_TEMPLATE.format(chat_history=chat_history)


def extract_summary(data: Any) -> str:
    """Pull the first candidate's text out of a generateContent response.

    Raises:
        MalformedResponseError: If the response has no usable text.
    """
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        raise MalformedResponseError("Could not extract summary from response") from exc
    if not isinstance(text, str) or not text.strip():
        raise MalformedResponseError("Response contained no summary text")
    return text.strip()


class GeminiSummarizer:
    """Summarizes messages with the Gemini REST API."""

    def __init__(
        self,
        credentials: CredentialStore,
        *,
        model: str = DEFAULT_GEMINI_MODEL,
        api_base: str = GEMINI_API_BASE,
        timeout: float = SUMMARIZE_TIMEOUT_SECONDS,
        max_messages: int | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the summarizer.

        Args:
            credentials: Resolves the API key on every call.
            model: Gemini model name.
            api_base: REST base URL.
            timeout: Request timeout in seconds.
            max_messages: Only the most recent N messages are sent, if set.
            http_client: Shared client; when None one is opened per request.
        """
        self._credentials = credentials
        self._endpoint = f"{api_base.rstrip('/')}/models/{model}:generateContent"
        self._timeout = timeout
        self._max_messages = max_messages
        self._http_client = http_client

    @property
    def endpoint(self) -> str:
        return self._endpoint

    async def summarize(self, messages: Sequence[Message]) -> str:
        """Summarize ``messages``.

        Raises:
            MissingCredentialError: No API key is configured.
            TransportError: The request failed or returned an error status.
            MalformedResponseError: The response held no summary.
        """
        api_key = await asyncio.to_thread(self._credentials.resolve)
        if not api_key:
            log.warning("summarize_missing_api_key")
            raise MissingCredentialError()

        if not messages:
            return NO_MESSAGES_TEXT

        if self._max_messages is not None:
            messages = list(messages)[-self._max_messages :]

        prompt = build_prompt(messages)
        payload = {"contents": [{"parts": [{"text": prompt}]}]}
        headers = {"x-goog-api-key": api_key, "Content-Type": "application/json"}

        log.info("summarize_request", message_count=len(messages), prompt_length=len(prompt))

        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self._endpoint, json=payload, headers=headers, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._endpoint, json=payload, headers=headers)
        except httpx.RequestError as exc:
            log.warning("summarize_transport_failed", error=str(exc))
            raise TransportError(f"Error calling Gemini API: {exc}") from exc

        if response.status_code != 200:
            body = response.text[:200]
            log.warning("summarize_rejected", status=response.status_code, body=body)
            raise TransportError(f"API returned {response.status_code} - {body}")

        try:
            data = response.json()
        except ValueError as exc:
            log.warning("summarize_response_not_json", body=response.text[:200])
            raise MalformedResponseError("Response was not valid JSON") from exc

        summary = extract_summary(data)
        log.info("summarize_complete", summary_length=len(summary))
        return summary
