from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Callable, Iterator
from typing import Any

from ctxwire._internal.bindings import Api, Binding, BindingRegistry, ScopeKind
from ctxwire._internal.cache import ComponentCache
from ctxwire._internal.groups import GroupOrder
from ctxwire._internal.type_checks import qualified_name
from ctxwire.exceptions import CtxWireResolutionError
from ctxwire.lock_mode import LockMode

logger = logging.getLogger(__name__)

_SCOPE_IDS = itertools.count(1)


class Scope:
    """One node of the container graph.

    A scope owns a binding registry, a component cache, the iteration orders
    of the component groups resolved through it and the termination callbacks
    registered on it. Lookups walk from a scope to its ancestors.
    """

    def __init__(
        self,
        *,
        kind: ScopeKind = ScopeKind.ROOT,
        parent: Scope | None = None,
        lock_mode: LockMode = LockMode.THREAD,
        name: str | None = None,
    ) -> None:
        self.id = next(_SCOPE_IDS)
        self.kind = kind
        self.parent = parent
        self.lock_mode = lock_mode
        self.name = name or f"{kind.value}-{self.id}"
        self.registry = BindingRegistry(kind)
        self.cache = ComponentCache(lock_mode=lock_mode)
        self.group_orders: dict[Api, GroupOrder] = {}
        self.acceptance: dict[Binding, tuple[int, tuple[Any, ...]]] = {}
        self.closed = False
        self.generation = 0
        """Registration counter of the scope graph; only maintained on the root scope."""
        self._close_callbacks: list[Callable[[], Any]] = []
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        return f"Scope({self.name!r}, {self.kind.value})"

    @property
    def root(self) -> Scope:
        scope = self
        while scope.parent is not None:
            scope = scope.parent
        return scope

    def chain(self) -> Iterator[Scope]:
        """Yield this scope followed by its ancestors."""
        scope: Scope | None = self
        while scope is not None:
            yield scope
            scope = scope.parent

    def register(self, binding: Binding) -> Binding | None:
        self.check_open()
        stored = self.registry.register(binding)
        root = self.root
        with root._lock:
            root.generation += 1
        return stored

    def lookup(self, api: Api) -> tuple[Binding, Scope] | None:
        """Return the nearest binding for ``api`` and the scope that owns it."""
        for scope in self.chain():
            binding = scope.registry.get(api)
            if binding is not None:
                return binding, scope
        return None

    def lookup_group(self, api: Api) -> tuple[tuple[Binding, Scope], ...]:
        """Return group members visible from this scope.

        Members of ancestors come first, then registration order within each
        scope. A component registered in several scopes appears once, owned by
        the outermost of them.
        """
        members: list[tuple[Binding, Scope]] = []
        seen: set[Any] = set()
        for scope in reversed(list(self.chain())):
            for binding in scope.registry.members(api):
                if binding.member_key in seen:
                    continue
                seen.add(binding.member_key)
                members.append((binding, scope))
        return tuple(members)

    def resolution_scope(self, owner: Scope) -> Scope:
        """Return the scope a component owned by ``owner`` is built and cached in.

        This is the nearest domain scope between this scope and ``owner``, or
        ``owner`` itself.
        """
        for scope in self.chain():
            if scope is owner:
                return owner
            if scope.kind is ScopeKind.DOMAIN:
                return scope
        return owner

    def check_open(self) -> None:
        for scope in self.chain():
            if scope.closed:
                msg = f"Container '{scope.name}' is closed."
                raise CtxWireResolutionError(msg)

    def on_close(self, callback: Callable[[], Any]) -> None:
        with self._lock:
            self.check_open()
            self._close_callbacks.append(callback)

    def close(self) -> None:
        """Run termination callbacks in reverse order and drop cached components.

        Closing is idempotent and never closes ancestors. Every callback runs;
        the first exception raised by a callback is re-raised afterwards.
        """
        with self._lock:
            if self.closed:
                return
            self.closed = True
            callbacks = list(reversed(self._close_callbacks))
            self._close_callbacks.clear()

        if callbacks:
            logger.info("Closing container '%s' with %d termination callbacks", self.name, len(callbacks))
        else:
            logger.debug("Closing container '%s'", self.name)

        first_error: BaseException | None = None
        for callback in callbacks:
            try:
                callback()
            except Exception as error:
                logger.exception("Termination callback %s of '%s' failed", qualified_name(callback), self.name)
                if first_error is None:
                    first_error = error
        self.cache.clear()
        self.group_orders.clear()
        self.acceptance.clear()
        if first_error is not None:
            raise first_error

    def store_group_order(self, api: Api, order: GroupOrder) -> GroupOrder:
        with self._lock:
            current = self.group_orders.get(api)
            if current is not None and current.members == order.members:
                return current
            self.group_orders[api] = order
            return order


__all__ = ["Scope"]
