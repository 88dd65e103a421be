"""Gemini API key resolution.

A key set at runtime (persisted in the durable store) wins over the
build-time default from the environment. With neither, requests fail with
MissingCredentialError.
"""

from __future__ import annotations

import json

from pydantic import SecretStr

from wa_summarizer.constants import GEMINI_API_KEY_KEY
from wa_summarizer.inbox.store import JsonFileStore, PersistenceError
from wa_summarizer.logging import get_logger

log = get_logger("wa_summarizer.summarizer.credentials")


class CredentialStore:
    """Resolves the API key used for summarization requests."""

    def __init__(
        self,
        store: JsonFileStore | None = None,
        *,
        default_key: SecretStr | str | None = None,
        key: str = GEMINI_API_KEY_KEY,
    ) -> None:
        """Initialize the credential store.

        Args:
            store: Durable store holding the runtime key, if any.
            default_key: Build-time key, used when no runtime key is set.
            key: Store key for the runtime value.
        """
        self._store = store
        self._key = key
        if isinstance(default_key, SecretStr):
            default_key = default_key.get_secret_value()
        self._default_key = default_key.strip() if default_key else None

    def runtime_key(self) -> str | None:
        """Return the runtime key, or None if unset or unreadable."""
        if self._store is None:
            return None
        try:
            value = self._store.get(self._key)
        except PersistenceError as exc:
            log.warning("runtime_api_key_unreadable", error=str(exc))
            return None
        if value is None:
            return None
        try:
            decoded = json.loads(value)
        except (ValueError, RecursionError) as exc:
            log.warning("runtime_api_key_corrupt", error=str(exc))
            return None
        if not isinstance(decoded, str):
            log.warning("runtime_api_key_corrupt", error="expected a JSON string")
            return None
        return decoded.strip() or None

    def resolve(self) -> str | None:
        """Return the effective key: runtime, then build-time, then None."""
        return self.runtime_key() or self._default_key

    def set_api_key(self, value: str) -> None:
        """Persist a runtime key. A blank value removes it.

        Raises:
            RuntimeError: If there is no durable store to hold the key.
            PersistenceError: If the store cannot be written.
        """
        if self._store is None:
            raise RuntimeError("No durable store configured for runtime API keys")
        value = value.strip()
        if not value:
            self._store.delete(self._key)
            log.info("runtime_api_key_cleared")
            return
        self._store.set(self._key, json.dumps(value))
        log.info("runtime_api_key_set")

    @property
    def has_key(self) -> bool:
        return self.resolve() is not None
