"""A thread-safe key/value store whose entries expire."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Mapping, TypeVar

V = TypeVar("V")


@dataclass
class _Entry(Generic[V]):
    value: V
    expires_at: float


class ExpiringStore(Generic[V]):
    """Holds values with a time to live, sweeping expired ones periodically.

    When ``interval`` is positive a background thread calls :meth:`expire_due`
    every ``interval`` seconds. ``on_expire(key, value)`` is called for each
    entry removed by expiration.
    """

    def __init__(
        self,
        interval: float,
        on_expire: Callable[[str, V], None] | None = None,
    ) -> None:
        self._entries: dict[str, _Entry[V]] = {}
        self._lock = threading.Lock()
        self._on_expire = on_expire
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None
        if interval and interval > 0:
            self._thread = threading.Thread(
                target=self._run, args=(interval,), name="expiring-store", daemon=True
            )
            self._thread.start()

    def _run(self, interval: float) -> None:
        while not self._stopped.wait(interval):
            self.expire_due()

    def get(self, key: str) -> V | None:
        """Return the live value for ``key`` or None."""
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or entry.expires_at <= time.time():
            return None
        return entry.value

    def put(self, key: str, value: V, ttl: float) -> None:
        with self._lock:
            self._entries[key] = _Entry(value, time.time() + ttl)

    def delete(self, key: str) -> bool:
        """Remove ``key``; return whether it was present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def expire_due(self) -> list[str]:
        """Remove expired entries, notify the callback and return their keys."""
        now = time.time()
        with self._lock:
            expired = [(key, entry) for key, entry in self._entries.items() if entry.expires_at <= now]
            for key, _ in expired:
                del self._entries[key]
        if self._on_expire is not None:
            for key, entry in expired:
                self._on_expire(key, entry.value)
        return [key for key, _ in expired]

    def dump(self) -> dict[str, dict[str, Any]]:
        """Return every entry as ``{key: {"value": ..., "expires_at": epoch}}``."""
        with self._lock:
            return {
                key: {"value": entry.value, "expires_at": entry.expires_at}
                for key, entry in self._entries.items()
            }

    def load(self, data: Mapping[str, Mapping[str, Any]]) -> None:
        """Add entries in the :meth:`dump` form, skipping those already expired."""
        now = time.time()
        with self._lock:
            for key, item in data.items():
                expires_at = float(item["expires_at"])
                if expires_at > now:
                    self._entries[key] = _Entry(item["value"], expires_at)

    def stop(self) -> None:
        """Stop the background sweeper."""
        self._stopped.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=5)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)