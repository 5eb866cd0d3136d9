from __future__ import annotations

import inspect
import itertools
import logging
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, TypeAlias

from ctxwire._internal.qualifiers import Qualifier, QualifierType
from ctxwire._internal.type_checks import qualified_name
from ctxwire.exceptions import CtxWireBindingError

logger = logging.getLogger(__name__)

Api: TypeAlias = Any
"""A capability type a binding is registered for and references ask for."""


class BindingKind(Enum):
    """Select how a binding produces its component."""

    CLASS = "class"
    """Construct the target class with injected dependencies."""

    INSTANCE = "instance"
    """Return a pre-built object."""

    FACTORY = "factory"
    """Delegate construction to a component or variant factory."""


class Cardinality(Enum):
    """Define cache behavior for bound components."""

    SINGLETON = "singleton"
    """Build at most one instance per accepted context and container."""

    STATEFUL = "stateful"
    """Build a fresh instance for every reference."""


class ScopeKind(Enum):
    """Classify containers in the scope graph."""

    ROOT = "global"
    """The container created by the application."""

    CHILD = "local"
    """A container created with ``make_child``; resolves through to its ancestors."""

    DOMAIN = "domain"
    """A container created with ``make_domain``.

    Components owned by ancestors are re-created inside the domain when they
    are first referenced from within it, so each domain gets its own copies.
    """


_ORDER = itertools.count()


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class Binding:
    """Describe how one api is satisfied inside one container.

    Bindings are created by registration and never mutated; registration
    rules replace them as a whole.
    """

    api: Api
    """The capability type the binding satisfies."""
    kind: BindingKind
    target: Any
    """The class, instance or factory (class or instance) producing the component."""
    cardinality: Cardinality = Cardinality.SINGLETON
    scope: ScopeKind = ScopeKind.ROOT
    """The kind of the container owning the binding."""
    primary: bool = True
    """Registration precedence; primary bindings replace fallback ones."""
    accepts: tuple[QualifierType, ...] = ()
    """Qualifier types the target accepts from its reference context."""
    ignores: tuple[QualifierType, ...] = ()
    """Qualifier types removed from the context before ``tags`` are applied."""
    tags: tuple[Qualifier, ...] = ()
    """Qualifier tags the target contributes to its dependencies' context."""
    groups: tuple[Api, ...] = ()
    """Component groups the target is a member of."""
    variant: bool = False
    """True when the factory is a ``VariantFactory``."""
    delegate: Binding | None = None
    """The class or instance binding a variant factory wraps."""
    order: int = field(default_factory=lambda: next(_ORDER))

    @property
    def bound_type(self) -> type:
        """Return the concrete type the binding produces or builds with."""
        if self.kind is BindingKind.INSTANCE:
            return type(self.target)
        if inspect.isclass(self.target):
            return self.target
        return type(self.target)

    @property
    def member_key(self) -> Any:
        """Identify the component this binding contributes to a component group.

        Class bindings of one type share their cached component and therefore
        their key; factory products are keyed per api and instances by object.
        """
        if self.kind is BindingKind.INSTANCE:
            return (BindingKind.INSTANCE, id(self.target))
        if self.kind is BindingKind.FACTORY:
            return (self.bound_type, self.api)
        return self.bound_type

    @property
    def stateful(self) -> bool:
        return self.cardinality is Cardinality.STATEFUL

    def __repr__(self) -> str:
        precedence = "primary" if self.primary else "fallback"
        return (
            f"Binding({qualified_name(self.api)} -> {self.kind.value} "
            f"{qualified_name(self.bound_type)}, {self.cardinality.value}, {precedence})"
        )


class BindingRegistry:
    """Store the bindings of one container indexed by api and group.

    Registration applies precedence rules: a primary binding replaces a
    fallback binding for the same api, a fallback binding arriving after a
    primary one is ignored, and two bindings of equal precedence for the same
    api are rejected. A variant factory wraps the class or instance binding
    registered for its api, whichever arrives first.
    """

    def __init__(self, scope: ScopeKind = ScopeKind.ROOT) -> None:
        self.scope = scope
        self._bindings: dict[Api, Binding] = {}
        self._groups: dict[Api, list[Binding]] = {}
        self._lock = threading.RLock()

    @dataclass(frozen=True, slots=True)
    class Snapshot:
        """Capture registry state for transactional rollback."""

        bindings: dict[Api, Binding]
        groups: dict[Api, list[Binding]]

    def snapshot(self) -> Snapshot:
        """Capture current registrations for rollback."""
        with self._lock:
            return self.Snapshot(
                bindings=dict(self._bindings),
                groups={api: list(members) for api, members in self._groups.items()},
            )

    def restore(self, snapshot: Snapshot) -> None:
        """Restore registrations from a previous snapshot.

        Args:
            snapshot: Previously captured snapshot state to restore into the registry.

        """
        with self._lock:
            self._bindings = dict(snapshot.bindings)
            self._groups = {api: list(members) for api, members in snapshot.groups.items()}

    def register(self, binding: Binding) -> Binding | None:
        """Add ``binding`` according to the precedence rules.

        Args:
            binding: Binding to register. Its ``scope`` is overwritten with the
                registry's scope kind.

        Returns:
            The binding effectively stored for the api, or ``None`` when the
            registration was ignored.

        Raises:
            CtxWireBindingError: If a binding of equal precedence exists.

        """
        if binding.api is None:
            msg = f"Cannot bind {binding.target!r} to api None."
            raise CtxWireBindingError(msg)
        binding = replace(binding, scope=self.scope)

        with self._lock:
            existing = self._bindings.get(binding.api)
            if existing is None:
                return self._store(binding)

            if binding.variant and not existing.variant and existing.kind is not BindingKind.FACTORY:
                logger.debug("Variant factory %r wraps %r", binding, existing)
                self._bindings[binding.api] = replace(binding, delegate=existing)
                return self._bindings[binding.api]

            if existing.variant and binding.kind is not BindingKind.FACTORY:
                delegate = existing.delegate
                if delegate is not None and not self._supersedes(delegate, binding):
                    return None
                if delegate is not None:
                    self._remove_from_groups(delegate)
                logger.debug("Variant factory %r wraps %r", existing, binding)
                self._bindings[binding.api] = replace(existing, delegate=binding)
                self._add_to_groups(binding)
                return self._bindings[binding.api]

            if not self._supersedes(existing, binding):
                return None
            self._remove_from_groups(existing)
            return self._store(binding)

    def get(self, api: Api) -> Binding | None:
        """Return the binding registered for ``api`` in this registry, if any."""
        return self._bindings.get(api)

    def members(self, group: Api) -> tuple[Binding, ...]:
        """Return group members registered in this registry, in registration order."""
        with self._lock:
            return tuple(self._groups.get(group, ()))

    def values(self) -> list[Binding]:
        """Get all bindings."""
        return list(self._bindings.values())

    def __contains__(self, api: Api) -> bool:
        return api in self._bindings

    def __len__(self) -> int:
        return len(self._bindings)

    def _store(self, binding: Binding) -> Binding:
        logger.debug(
            "Registered %s binding %r",
            "primary" if binding.primary else "fallback",
            binding,
        )
        self._bindings[binding.api] = binding
        self._add_to_groups(binding)
        return binding

    def _add_to_groups(self, binding: Binding) -> None:
        for group in binding.groups:
            members = self._groups.setdefault(group, [])
            if any(member.member_key == binding.member_key for member in members):
                continue
            members.append(binding)

    def _remove_from_groups(self, binding: Binding) -> None:
        for group in binding.groups:
            members = self._groups.get(group)
            if members and binding in members:
                members.remove(binding)

    def _supersedes(self, existing: Binding, binding: Binding) -> bool:
        if existing.primary == binding.primary:
            msg = (
                f"Api '{qualified_name(binding.api)}' is already bound to {existing!r}; "
                f"cannot bind {binding!r} with the same precedence."
            )
            raise CtxWireBindingError(msg)
        if not binding.primary:
            logger.debug("Ignoring fallback %r, %r is already bound", binding, existing)
            return False
        logger.debug("Primary %r replaces fallback %r", binding, existing)
        return True


__all__ = [
    "Api",
    "Binding",
    "BindingKind",
    "BindingRegistry",
    "Cardinality",
    "ScopeKind",
]
