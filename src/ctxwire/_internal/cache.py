from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import Any, TypeVar

from ctxwire._internal.type_checks import qualified_name
from ctxwire.lock_mode import LockMode

T = TypeVar("T")

logger = logging.getLogger(__name__)

_MISSING: Any = object()


@dataclass(frozen=True, slots=True)
class CacheKey:
    """Identify one cached component.

    ``identity`` is the bound type for class bindings, or a
    ``(factory type, api)`` pair for factory products.
    """

    identity: Any
    context_key: str
    scope_id: int

    def __str__(self) -> str:
        identity = self.identity
        if isinstance(identity, tuple):
            identity = "/".join(qualified_name(part) for part in identity)
        else:
            identity = qualified_name(identity)
        return f"{identity}[{self.context_key}]@{self.scope_id}"


@dataclass(slots=True, eq=False)
class _KeyLock:
    lock: threading.RLock = field(default_factory=threading.RLock)
    waiters: int = 0


class ComponentCache:
    """Store singleton components of one container.

    With ``LockMode.THREAD`` construction is serialized per ``CacheKey``:
    concurrent callers for the same key receive the instance built by the
    first one, while callers for other keys build in parallel. The map lock
    is only held to look up instances and per-key locks. Failed suppliers
    leave no entry behind.
    """

    def __init__(self, *, lock_mode: LockMode = LockMode.THREAD) -> None:
        self._instances: dict[CacheKey, Any] = {}
        self._key_locks: dict[CacheKey, _KeyLock] = {}
        self._lock: threading.Lock | None = (
            threading.Lock() if lock_mode is LockMode.THREAD else None
        )

    def get_or_create(self, key: CacheKey, supplier: Callable[[], T]) -> T:
        """Return the instance cached under ``key``, building it with ``supplier`` on a miss.

        Args:
            key: Cache key of the component.
            supplier: Callable building the component. Exceptions propagate and
                nothing is cached.

        """
        instance = self._instances.get(key, _MISSING)
        if instance is not _MISSING:
            logger.debug("Reusing %r for %s", instance, key)
            return instance
        if self._lock is None:
            return self._create(key, supplier)

        with self._lock:
            key_lock = self._key_locks.get(key)
            if key_lock is None:
                key_lock = self._key_locks[key] = _KeyLock()
            key_lock.waiters += 1
        try:
            with key_lock.lock:
                instance = self._instances.get(key, _MISSING)
                if instance is not _MISSING:
                    logger.debug("Reusing %r for %s", instance, key)
                    return instance
                return self._create(key, supplier)
        finally:
            with self._lock:
                key_lock.waiters -= 1
                if not key_lock.waiters:
                    del self._key_locks[key]

    def clear(self) -> list[Any]:
        """Drop every cached instance and return them in creation order."""
        with self._lock or nullcontext():
            instances = list(self._instances.values())
            self._instances.clear()
            return instances

    def _create(self, key: CacheKey, supplier: Callable[[], T]) -> T:
        instance = supplier()
        self._instances[key] = instance
        logger.debug("Created %r for %s", instance, key)
        return instance


__all__ = ["CacheKey", "ComponentCache"]
