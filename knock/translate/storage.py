"""On-disk response cache keyed by request fingerprints."""
from __future__ import annotations

import hashlib
import logging
import sqlite3
from pathlib import Path
from typing import Optional, Union

_DEFAULT_CACHE_FILENAME = "cache.sqlite3"
_IN_MEMORY = ":memory:"
_KEY_SEPARATOR = b"\x00"

_SCHEMA = "CREATE TABLE IF NOT EXISTS responses (key TEXT PRIMARY KEY, value BLOB NOT NULL)"

logger = logging.getLogger(__name__)


class CacheError(RuntimeError):
    """Base error for cache failures; never surfaced past ``CacheStore``."""


class CacheUnavailable(CacheError):
    """Raised when the backing store cannot be opened, read or written."""


class MalformedStoredValue(CacheError):
    """Raised when a stored value is not valid UTF-8."""


def get_default_cache_path() -> Path:
    return Path("~/.knock").expanduser() / _DEFAULT_CACHE_FILENAME


def make_key(query: str, os_name: str, shell: str, mode: str) -> str:
    """Return the SHA-256 hex fingerprint of a request.

    Fields are hashed in the order query, os, shell, mode, each followed by a
    NUL byte so neighbouring fields cannot bleed into one another.
    """
    digest = hashlib.sha256()
    for part in (query, os_name, shell, mode):
        digest.update(part.encode("utf-8"))
        digest.update(_KEY_SEPARATOR)
    return digest.hexdigest()


class CacheStore:
    """Embedded key/value store mapping fingerprints to response text.

    The SQLite connection is opened on first use and kept for the life of the
    handle. Any failure to open, read or write degrades to a cache miss.
    """

    def __init__(self, path: Union[Path, str, None] = None) -> None:
        if path is None:
            path = get_default_cache_path()
        self.path = path if path == _IN_MEMORY else Path(path).expanduser()
        self._connection: Optional[sqlite3.Connection] = None
        self._unavailable = False

    @classmethod
    def in_memory(cls) -> "CacheStore":
        return cls(_IN_MEMORY)

    def get(self, key: str) -> Optional[str]:
        """Return the cached text for ``key`` or ``None``."""
        try:
            return self._read(key)
        except MalformedStoredValue as exc:
            logger.debug("Ignoring malformed cache entry %s: %s", key, exc)
        except CacheUnavailable as exc:
            logger.warning("Response cache unavailable: %s", exc)
        return None

    def put(self, key: str, text: str) -> None:
        """Store ``text`` under ``key``, replacing any previous value."""
        try:
            self._write(key, text)
        except CacheUnavailable as exc:
            logger.warning("Failed to write response cache: %s", exc)

    def clear(self) -> None:
        try:
            connection = self._connect()
            with connection:
                connection.execute("DELETE FROM responses")
        except sqlite3.Error as exc:
            raise CacheUnavailable(str(exc)) from exc

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def _read(self, key: str) -> Optional[str]:
        connection = self._connect()
        try:
            row = connection.execute(
                "SELECT value FROM responses WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as exc:
            raise CacheUnavailable(str(exc)) from exc
        if row is None:
            return None
        value = row[0]
        if isinstance(value, str):
            return value
        try:
            return bytes(value).decode("utf-8")
        except (TypeError, UnicodeDecodeError) as exc:
            raise MalformedStoredValue(str(exc)) from exc

    def _write(self, key: str, text: str) -> None:
        connection = self._connect()
        try:
            with connection:
                connection.execute(
                    "INSERT OR REPLACE INTO responses (key, value) VALUES (?, ?)",
                    (key, text.encode("utf-8")),
                )
        except sqlite3.Error as exc:
            raise CacheUnavailable(str(exc)) from exc

    def _connect(self) -> sqlite3.Connection:
        if self._connection is not None:
            return self._connection
        if self._unavailable:
            raise CacheUnavailable(f"cache at {self.path} could not be opened")
        try:
            if isinstance(self.path, Path):
                self.path.parent.mkdir(parents=True, exist_ok=True)
            connection = sqlite3.connect(str(self.path))
            connection.execute(_SCHEMA)
        except (OSError, sqlite3.Error) as exc:
            self._unavailable = True
            raise CacheUnavailable(f"cache at {self.path} could not be opened: {exc}") from exc
        self._connection = connection
        return connection
