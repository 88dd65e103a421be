"""Errors raised by summarization clients.

Every category is surfaced to the user as a displayable error string;
none of them is retried automatically.
"""


class SummarizationError(Exception):
    """Base class for summarization failures."""


class MissingCredentialError(SummarizationError):
    """Raised before any network attempt when no API key is configured."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "API key is required. Set GEMINI_API_KEY or provide a key in settings."
        )


class TransportError(SummarizationError):
    """Raised when the request fails or the service answers with an error status."""


class MalformedResponseError(SummarizationError):
    """Raised when the service response cannot be turned into a summary."""
