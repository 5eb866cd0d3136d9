from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ctxwire._internal.path import DependencyPath
    from ctxwire._internal.qualifiers import Qualifier

_UNSET: Any = object()


class InstanceReference:
    """Give observers a handle to a component that was just constructed.

    ``instance`` is ``None`` while ``Observer.instantiated`` runs and holds the
    component once every observer has returned.
    """

    __slots__ = ("_instance", "type")

    def __init__(self, component_type: type) -> None:
        self.type = component_type
        self._instance: Any = _UNSET

    @property
    def instance(self) -> Any:
        if self._instance is _UNSET:
            return None
        return self._instance

    @property
    def available(self) -> bool:
        return self._instance is not _UNSET

    def _set(self, instance: Any) -> None:
        self._instance = instance

    def __repr__(self) -> str:
        return f"InstanceReference({self.type.__qualname__}, available={self.available})"


@runtime_checkable
class Observer(Protocol):
    """Receive resolution events.

    Implement any subset of the methods; missing methods are skipped. Events
    are delivered synchronously on the resolving thread, and exceptions raised
    by an observer propagate to the caller of the resolution.
    """

    def descending(
        self,
        declaring: type,
        dependency: Any,
        type_tags: tuple[Qualifier, ...],
        reference_tags: tuple[Qualifier, ...],
    ) -> None:
        """Report that ``declaring`` is about to resolve ``dependency``."""

    def ascending(self, declaring: type, dependency: Any) -> None:
        """Report that the resolution announced by ``descending`` finished."""

    def circular(self, path: DependencyPath) -> None:
        """Report a circular reference satisfied with a placeholder."""

    def resolved(self, path: DependencyPath, component_type: type) -> None:
        """Report that ``path`` resolves to ``component_type``."""

    def instantiated(self, path: DependencyPath, reference: InstanceReference) -> None:
        """Report that a component was constructed."""


class CompositeObserver:
    """Fan every event out to several observers in order."""

    def __init__(self, observers: Iterable[Any]) -> None:
        self.observers = tuple(observers)

    def descending(
        self,
        declaring: type,
        dependency: Any,
        type_tags: tuple[Qualifier, ...],
        reference_tags: tuple[Qualifier, ...],
    ) -> None:
        for observer in self.observers:
            _call(observer, "descending", declaring, dependency, type_tags, reference_tags)

    def ascending(self, declaring: type, dependency: Any) -> None:
        for observer in self.observers:
            _call(observer, "ascending", declaring, dependency)

    def circular(self, path: DependencyPath) -> None:
        for observer in self.observers:
            _call(observer, "circular", path)

    def resolved(self, path: DependencyPath, component_type: type) -> None:
        for observer in self.observers:
            _call(observer, "resolved", path, component_type)

    def instantiated(self, path: DependencyPath, reference: InstanceReference) -> None:
        for observer in self.observers:
            _call(observer, "instantiated", path, reference)


class ObserverHub:
    """Deliver events from the injector to the observer of one container view.

    ``resolved`` is delivered once per distinct ``(path, type)`` pair for the
    lifetime of the hub.
    """

    def __init__(self, observer: Any | None) -> None:
        self.observer = observer
        self._reported: set[tuple[Any, ...]] = set()
        self._lock = threading.Lock()

    def descending(
        self,
        declaring: type,
        dependency: Any,
        type_tags: tuple[Qualifier, ...],
        reference_tags: tuple[Qualifier, ...],
    ) -> None:
        if self.observer is not None:
            _call(self.observer, "descending", declaring, dependency, type_tags, reference_tags)

    def ascending(self, declaring: type, dependency: Any) -> None:
        if self.observer is not None:
            _call(self.observer, "ascending", declaring, dependency)

    def circular(self, path: DependencyPath) -> None:
        if self.observer is not None:
            _call(self.observer, "circular", path)

    def resolved(self, path: DependencyPath, component_type: type) -> None:
        if self.observer is None:
            return
        key = (path.types, tuple(element.api for element in path), component_type)
        with self._lock:
            if key in self._reported:
                return
            self._reported.add(key)
        _call(self.observer, "resolved", path, component_type)

    def instantiated(self, path: DependencyPath, component_type: type, instance: Any) -> None:
        reference = InstanceReference(component_type)
        if self.observer is not None:
            _call(self.observer, "instantiated", path, reference)
        reference._set(instance)  # noqa: SLF001


def _call(observer: Any, event: str, *args: Any) -> None:
    handler = getattr(observer, event, None)
    if handler is None:
        return
    handler(*args)


__all__ = [
    "CompositeObserver",
    "InstanceReference",
    "Observer",
    "ObserverHub",
]
