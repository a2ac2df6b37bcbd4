"""Durable key-value store shared by the planner, history and preferences.

The on-disk file is a JSON object mapping each key to a JSON-encoded string,
the same shape a browser origin's local storage has. Every write re-reads the
file and merges one key so independent features never clobber each other.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable

from .exceptions import StorageCorrupt, StorageUnavailable

logger = logging.getLogger(__name__)

PROJECT_STATE_KEY = "projectState"
PAPER_REVIEWS_KEY = "paperReviews"
ENHANCED_LAYOUT_KEY = "enhancedLayout"
RESEARCH_APPROACH_KEY = "researchApproach"
HIDE_WELCOME_SPLASH_KEY = "hideWelcomeSplash"


class KeyValueStore:
    """JSON-file backed store with per-key read-merge-write semantics."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    # -- raw file access --------------------------------------------------

    def _load_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Storage file %s is unreadable, starting empty: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Storage file %s does not hold an object, starting empty", self.path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _dump_all(self, data: dict[str, str]) -> None:
        """Atomically replace the store file.

        Raises:
            StorageUnavailable: the directory or file could not be written.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".store-", suffix=".json")
        except OSError as e:
            raise StorageUnavailable(f"Cannot write {self.path}: {e}") from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except OSError as e:
            Path(tmp).unlink(missing_ok=True)
            raise StorageUnavailable(f"Cannot write {self.path}: {e}") from e
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    # -- public API -------------------------------------------------------

    def keys(self) -> list[str]:
        return list(self._load_all())

    def read_raw(self, key: str) -> Any:
        """Return the decoded value for *key*, or ``None`` when absent.

        Raises:
            StorageCorrupt: the stored value is not valid JSON.
        """
        encoded = self._load_all().get(key)
        if encoded is None:
            return None
        try:
            return json.loads(encoded)
        except json.JSONDecodeError as e:
            raise StorageCorrupt(f"Stored value for {key!r} is not valid JSON: {e}") from e

    def read(self, key: str, default: Any = None) -> Any:
        """Like ``read_raw`` but a corrupt value falls back to *default*."""
        try:
            value = self.read_raw(key)
        except StorageCorrupt as e:
            logger.warning("%s; using default", e)
            return default
        return default if value is None else value

    def write(self, key: str, value: Any) -> None:
        """Merge *key* into the latest persisted document."""
        data = self._load_all()
        data[key] = json.dumps(value, ensure_ascii=False)
        self._dump_all(data)

    def update(self, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
        """Read *key*, apply *fn*, write the result back and return it."""
        new_value = fn(self.read(key, default))
        self.write(key, new_value)
        return new_value

    def remove(self, key: str) -> None:
        data = self._load_all()
        if key in data:
            del data[key]
            self._dump_all(data)


class PreferenceFlags:
    """UI preference flags kept next to domain data in the same store."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    @property
    def enhanced_layout(self) -> bool:
        return bool(self.store.read(ENHANCED_LAYOUT_KEY, True))

    @enhanced_layout.setter
    def enhanced_layout(self, value: bool) -> None:
        self.store.write(ENHANCED_LAYOUT_KEY, bool(value))

    @property
    def research_approach(self) -> str | None:
        value = self.store.read(RESEARCH_APPROACH_KEY)
        return value if isinstance(value, str) else None

    @research_approach.setter
    def research_approach(self, value: str) -> None:
        self.store.write(RESEARCH_APPROACH_KEY, value)

    @property
    def hide_welcome_splash(self) -> bool:
        return bool(self.store.read(HIDE_WELCOME_SPLASH_KEY, False))

    @hide_welcome_splash.setter
    def hide_welcome_splash(self, value: bool) -> None:
        self.store.write(HIDE_WELCOME_SPLASH_KEY, bool(value))
