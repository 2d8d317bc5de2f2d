"""Thread-safe in-memory cache with expiring items."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger("weblet.cache")

DEFAULT_SIZE = 1009  # first prime after 1000
DEFAULT_TTL = 3600
DEFAULT_GC_INTERVAL = 10.0

CancelFunc = Callable[[], None]


@dataclass
class _Item:
    value: str
    expires: int


class _ReadWriteLock:
    """Many readers or one writer, writers are not starved by new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._waiting_writers += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._waiting_writers -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()


class Cache:
    """A simple cache of string values that expire after a number of seconds.

    Expired items are never returned: :meth:`get` drops them when it finds
    them, and :meth:`start_gc` runs a background sweep so items that are never
    read again do not pile up.
    """

    def __init__(self, size_hint: int = 0, *, clock: Callable[[], float] = time.time) -> None:
        if size_hint < 1:
            size_hint = DEFAULT_SIZE
        # dicts grow on their own, the hint is only recorded
        self.size_hint = size_hint
        self._items: Dict[str, _Item] = {}
        self._lock = _ReadWriteLock()
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    def __len__(self) -> int:
        self._lock.acquire_read()
        try:
            return len(self._items)
        finally:
            self._lock.release_read()

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Return the value stored under ``key`` or ``default`` when missing or expired."""

        self._lock.acquire_read()
        try:
            item = self._items.get(key)
        finally:
            self._lock.release_read()
        if item is None:
            return default
        if self._now() >= item.expires:
            self._delete_if(key, item)
            return default
        return item.value

    def _delete_if(self, key: str, item: _Item) -> None:
        self._lock.acquire_write()
        try:
            # a newer set() may have replaced the expired item meanwhile
            if self._items.get(key) is item:
                del self._items[key]
        finally:
            self._lock.release_write()

    def set(self, key: str, value: str, ttl: int = 0) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds (:data:`DEFAULT_TTL` when below 1)."""

        if ttl < 1:
            ttl = DEFAULT_TTL
        item = _Item(value=value, expires=self._now() + ttl)
        self._lock.acquire_write()
        try:
            self._items[key] = item
        finally:
            self._lock.release_write()

    def delete(self, key: str) -> None:
        self._lock.acquire_write()
        try:
            self._items.pop(key, None)
        finally:
            self._lock.release_write()

    def clear_expired(self) -> int:
        now = self._now()
        self._lock.acquire_write()
        try:
            expired = [key for key, item in self._items.items() if now >= item.expires]
            for key in expired:
                del self._items[key]
        finally:
            self._lock.release_write()
        return len(expired)

    def start_gc(self, interval: float = 0) -> CancelFunc:
        """Sweep expired items every ``interval`` seconds on a daemon thread.

        The returned function stops the sweeper. A sweep already running is
        allowed to finish and the thread is joined before it returns.
        """

        if interval <= 0:
            interval = DEFAULT_GC_INTERVAL
        stop = threading.Event()

        def _run() -> None:
            while not stop.wait(interval):
                removed = self.clear_expired()
                if removed:
                    logger.debug("Cache sweep removed %d expired items", removed)

        thread = threading.Thread(target=_run, name="weblet-cache-gc", daemon=True)
        thread.start()

        def cancel() -> None:
            stop.set()
            if thread is not threading.current_thread():
                thread.join()

        return cancel


__all__ = ["Cache", "CancelFunc", "DEFAULT_GC_INTERVAL", "DEFAULT_SIZE", "DEFAULT_TTL"]
