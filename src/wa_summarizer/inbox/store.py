"""Key/value durable store backed by one JSON-text file per key.

Writes go to a temporary sibling and are moved into place, so a crash
mid-write leaves the previous value intact.
"""

from __future__ import annotations

import re
from pathlib import Path

from wa_summarizer.logging import get_logger

log = get_logger("wa_summarizer.inbox.store")

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class PersistenceError(Exception):
    """Raised when the durable store cannot be read or written."""


class JsonFileStore:
    """Stores string blobs under simple keys in a directory."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid store key: {key!r}")
        return self._directory / f"{key}.json"

    def get(self, key: str) -> str | None:
        """Return the stored blob, or None when the key is absent."""
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise PersistenceError(f"failed to read {key}: {exc}") from exc

    def set(self, key: str, value: str) -> None:
        """Overwrite the blob stored under ``key``."""
        path = self._path(key)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".tmp")
            tmp_path.write_text(value, encoding="utf-8")
            tmp_path.replace(path)
        except OSError as exc:
            raise PersistenceError(f"failed to write {key}: {exc}") from exc
        log.debug("store_written", key=key, size=len(value))

    def delete(self, key: str) -> None:
        """Remove ``key``; missing keys are ignored."""
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"failed to delete {key}: {exc}") from exc

    def exists(self, key: str) -> bool:
        return self._path(key).exists()
