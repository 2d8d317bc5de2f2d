"""Tests for the expiring in-memory cache."""

from __future__ import annotations

import threading
import time

from weblet.cache import DEFAULT_SIZE, DEFAULT_TTL, Cache


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_get_returns_stored_value() -> None:
    cache = Cache(clock=FakeClock())
    cache.set("key", "value", 10)

    assert cache.get("key") == "value"
    assert len(cache) == 1


def test_get_missing_key_returns_default() -> None:
    cache = Cache(clock=FakeClock())

    assert cache.get("missing") is None
    assert cache.get("missing", "fallback") == "fallback"


def test_items_expire_after_ttl() -> None:
    clock = FakeClock()
    cache = Cache(clock=clock)
    cache.set("key", "value", 5)

    clock.advance(4)
    assert cache.get("key") == "value"

    clock.advance(1)
    assert cache.get("key") is None
    # expired items found by get() are dropped
    assert len(cache) == 0


def test_ttl_below_one_uses_default_ttl() -> None:
    clock = FakeClock()
    cache = Cache(clock=clock)
    cache.set("zero", "a", 0)
    cache.set("negative", "b", -3)

    clock.advance(DEFAULT_TTL - 1)
    assert cache.get("zero") == "a"
    assert cache.get("negative") == "b"

    clock.advance(1)
    assert cache.get("zero") is None
    assert cache.get("negative") is None


def test_set_overwrites_value_and_expiry() -> None:
    clock = FakeClock()
    cache = Cache(clock=clock)
    cache.set("key", "old", 2)
    clock.advance(1)
    cache.set("key", "new", 10)

    clock.advance(5)
    assert cache.get("key") == "new"
    assert len(cache) == 1


def test_delete_removes_item() -> None:
    cache = Cache(clock=FakeClock())
    cache.set("key", "value", 10)

    cache.delete("key")
    cache.delete("never-set")

    assert cache.get("key") is None
    assert len(cache) == 0


def test_clear_expired_only_drops_expired_items() -> None:
    clock = FakeClock()
    cache = Cache(clock=clock)
    cache.set("short", "a", 1)
    cache.set("long", "b", 100)

    clock.advance(2)

    assert cache.clear_expired() == 1
    assert len(cache) == 1
    assert cache.get("long") == "b"


def test_size_hint_defaults() -> None:
    assert Cache().size_hint == DEFAULT_SIZE
    assert Cache(-1).size_hint == DEFAULT_SIZE
    assert Cache(17).size_hint == 17


def test_background_sweep_removes_expired_items() -> None:
    cache = Cache()
    for index in range(10):
        cache.set(f"key-{index}", "value", 1)
    cancel = cache.start_gc(0.05)
    try:
        deadline = time.monotonic() + 5
        while len(cache) and time.monotonic() < deadline:
            time.sleep(0.05)
        assert len(cache) == 0
    finally:
        cancel()


def test_cancel_stops_the_sweeper() -> None:
    cache = Cache()
    before = {thread.ident for thread in threading.enumerate()}
    cancel = cache.start_gc(0.01)
    started = [thread for thread in threading.enumerate() if thread.ident not in before]

    cancel()
    cancel()

    assert started
    assert not any(thread.is_alive() for thread in started)


def test_concurrent_access() -> None:
    cache = Cache()
    errors: list[BaseException] = []

    def worker(prefix: str) -> None:
        try:
            for index in range(200):
                key = f"{prefix}-{index}"
                cache.set(key, str(index), 60)
                assert cache.get(key) == str(index)
                if index % 2:
                    cache.delete(key)
        except BaseException as exc:  # pragma: no cover - only on failure
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(f"t{n}",)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert not errors
    assert len(cache) == 8 * 100


def test_passive_expiry_keeps_a_concurrent_set() -> None:
    clock = FakeClock()
    cache = Cache(clock=clock)
    cache.set("key", "stale", 1)
    clock.advance(2)

    lock = cache._lock
    release_read = lock.release_read
    writes = []

    def release_then_write() -> None:
        release_read()
        if not writes:
            # another thread stores a fresh value right after get() read the stale one
            writes.append(True)
            cache.set("key", "fresh", 60)

    lock.release_read = release_then_write

    assert cache.get("key") is None
    assert cache.get("key") == "fresh"
    assert len(cache) == 1
