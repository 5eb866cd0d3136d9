import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from ctxwire._internal.cache import CacheKey, ComponentCache
from ctxwire.lock_mode import LockMode


class Left:
    pass


class Right:
    pass


def test_supplier_runs_once_per_key() -> None:
    cache = ComponentCache()
    key = CacheKey(Left, "", 1)
    calls: list[int] = []

    def supplier() -> Left:
        calls.append(1)
        return Left()

    first = cache.get_or_create(key, supplier)

    assert cache.get_or_create(key, supplier) is first
    assert calls == [1]


def test_supplier_for_other_key_runs_while_key_is_building() -> None:
    cache = ComponentCache()
    right_key = CacheKey(Right, "", 1)

    def build_left() -> Left:
        with ThreadPoolExecutor(max_workers=1) as executor:
            future = executor.submit(cache.get_or_create, right_key, Right)
            future.result(timeout=2)
        return Left()

    cache.get_or_create(CacheKey(Left, "", 1), build_left)

    assert isinstance(cache.get_or_create(right_key, Right), Right)


def test_failed_supplier_leaves_no_entry() -> None:
    cache = ComponentCache()
    key = CacheKey(Left, "", 1)

    def failing() -> Left:
        msg = "boom"
        raise RuntimeError(msg)

    with pytest.raises(RuntimeError, match="boom"):
        cache.get_or_create(key, failing)

    assert isinstance(cache.get_or_create(key, Left), Left)
    assert not cache._key_locks  # noqa: SLF001


def test_key_locks_are_released_after_concurrent_creation() -> None:
    cache = ComponentCache()
    key = CacheKey(Left, "", 1)
    barrier = threading.Barrier(4)

    def resolve() -> Left:
        barrier.wait()
        return cache.get_or_create(key, Left)

    with ThreadPoolExecutor(max_workers=4) as executor:
        results = list(executor.map(lambda _: resolve(), range(4)))

    assert all(result is results[0] for result in results)
    assert not cache._key_locks  # noqa: SLF001


def test_clear_returns_instances_in_creation_order() -> None:
    cache = ComponentCache(lock_mode=LockMode.NONE)
    left = cache.get_or_create(CacheKey(Left, "", 1), Left)
    right = cache.get_or_create(CacheKey(Right, "", 1), Right)

    assert cache.clear() == [left, right]
    assert cache.clear() == []
