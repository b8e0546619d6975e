"""In-memory implementation of ContactCache (time-boxed, keyed by address book name)."""

import threading
import time
from collections.abc import Callable

from phonebook.application.dto import CacheStatus
from phonebook.domain import Contact

DEFAULT_TTL_SECONDS = 5 * 60


class InMemoryContactCache:
    """Entries expire ttl_seconds after they were stored. Expired entries stay in status()."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[list[Contact], float]] = {}
        self._lock = threading.Lock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, key: str) -> list[Contact] | None:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        contacts, stored_at = entry
        if self._clock() - stored_at >= self._ttl:
            return None
        return list(contacts)

    def put(self, key: str, contacts: list[Contact]) -> None:
        with self._lock:
            self._entries[key] = (list(contacts), self._clock())

    def clear(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def status(self) -> dict[str, CacheStatus]:
        now = self._clock()
        with self._lock:
            entries = dict(self._entries)
        return {
            key: CacheStatus(contact_count=len(contacts), age_seconds=now - stored_at)
            for key, (contacts, stored_at) in entries.items()
        }
