from __future__ import annotations

import inspect
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Generic, TypeVar
from weakref import WeakKeyDictionary

from ctxwire._internal.path import FrameState
from ctxwire._internal.type_checks import qualified_name
from ctxwire.exceptions import CtxWireCircularReferencesError, CtxWireResolutionError

if TYPE_CHECKING:
    from ctxwire._internal.path import DependencyPath, ResolutionFrame

T = TypeVar("T")

_UNSET: Any = object()
_FRAME = "_ctxwire_frame"
_PATH = "_ctxwire_path"
_FORWARDED_DUNDERS = frozenset(
    {
        "__call__",
        "__iter__",
        "__next__",
        "__len__",
        "__contains__",
        "__getitem__",
        "__setitem__",
        "__delitem__",
        "__enter__",
        "__exit__",
        "__str__",
        "__bool__",
    },
)


class CircularPlaceholder:
    """Stand in for a component that is still being constructed.

    Placeholders are created when a capability interface is referenced while
    the component bound to it is still under construction further up the
    reference chain. The placeholder is an instance of the interface and
    forwards every attribute access and method call to the real component
    once its construction has finished. Using it earlier raises
    ``CtxWireCircularReferencesError``.
    """

    __slots__ = ()

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_ctxwire_"):
            raise AttributeError(name)
        return getattr(placeholder_target(self), name)

    def __setattr__(self, name: str, value: Any) -> None:
        setattr(placeholder_target(self), name, value)

    def __repr__(self) -> str:
        frame = object.__getattribute__(self, _FRAME)
        return f"CircularPlaceholder({qualified_name(frame.api)}, {frame.state.value})"


def placeholder_target(placeholder: CircularPlaceholder) -> Any:
    """Return the component a placeholder stands for.

    Raises:
        CtxWireCircularReferencesError: If the component is still being constructed.
        CtxWireResolutionError: If the construction of the component failed.

    """
    frame: ResolutionFrame = object.__getattribute__(placeholder, _FRAME)
    path: DependencyPath = object.__getattribute__(placeholder, _PATH)
    if frame.state is FrameState.RESOLVED and frame.has_instance:
        return frame.instance
    if frame.state is FrameState.FAILED:
        msg = f"Circular reference to '{qualified_name(frame.api)}' cannot be used, its construction failed"
        raise CtxWireResolutionError(msg, path=path) from frame.error
    msg = (
        f"Circular reference to '{qualified_name(frame.api)}' used before its "
        "construction finished"
    )
    raise CtxWireCircularReferencesError(msg, path=path)


_PLACEHOLDER_TYPES: WeakKeyDictionary[type, type[CircularPlaceholder]] = WeakKeyDictionary()
_PLACEHOLDER_TYPES_LOCK = threading.Lock()


def make_placeholder(api: type, frame: ResolutionFrame, path: DependencyPath) -> Any:
    """Return a placeholder for ``api`` bound to the in-progress ``frame``."""
    placeholder_type = _placeholder_type(api)
    placeholder = object.__new__(placeholder_type)
    object.__setattr__(placeholder, _FRAME, frame)
    object.__setattr__(placeholder, _PATH, path)
    return placeholder


def _placeholder_type(api: type) -> type[CircularPlaceholder]:
    with _PLACEHOLDER_TYPES_LOCK:
        placeholder_type = _PLACEHOLDER_TYPES.get(api)
        if placeholder_type is None:
            namespace: dict[str, Any] = {
                "__slots__": (_FRAME, _PATH),
                "__module__": __name__,
                "__qualname__": f"CircularPlaceholder[{api.__qualname__}]",
            }
            for name in _forwarded_names(api):
                namespace[name] = _forwarder(name, getattr(api, name, None))
            placeholder_type = type(
                f"CircularPlaceholder[{api.__name__}]",
                (CircularPlaceholder, api),
                namespace,
            )
            _PLACEHOLDER_TYPES[api] = placeholder_type
        return placeholder_type


def _forwarded_names(api: type) -> list[str]:
    names: list[str] = []
    for name in dir(api):
        if name.startswith("__") and name not in _FORWARDED_DUNDERS:
            continue
        if name.startswith("_abc") or name == "_is_protocol" or name in dir(object) and name != "__str__":
            continue
        attribute = inspect.getattr_static(api, name, None)
        if attribute is None:
            continue
        if isinstance(attribute, property | staticmethod | classmethod) or inspect.isfunction(attribute):
            names.append(name)
    return names


def _forwarder(name: str, attribute: Any) -> Any:
    if isinstance(attribute, property):
        return property(
            lambda self: getattr(placeholder_target(self), name),
            lambda self, value: setattr(placeholder_target(self), name, value),
        )

    def forward(self: CircularPlaceholder, *args: Any, **kwargs: Any) -> Any:
        return getattr(placeholder_target(self), name)(*args, **kwargs)

    forward.__name__ = name
    return forward


class DeferredReference(Generic[T]):
    """Resolve a dependency on first access.

    Injected for parameters annotated ``Deferred[T]``. The first call to
    :meth:`get` resolves the dependency with the context captured at the
    reference point; later calls return the same object. Resolution is
    thread safe.

    Examples:
        .. code-block:: python

            class Scheduler:
                def __init__(self, worker: Deferred[Worker]) -> None:
                    self._worker = worker

                def run(self) -> None:
                    self._worker.get().start()

    """

    __slots__ = ("_api", "_lock", "_supplier", "_value")

    def __init__(self, api: Any, supplier: Callable[[], T]) -> None:
        self._api = api
        self._supplier = supplier
        self._lock = threading.Lock()
        self._value: Any = _UNSET

    def get(self) -> T:
        """Return the referenced component, resolving it on first call."""
        if self._value is _UNSET:
            with self._lock:
                if self._value is _UNSET:
                    self._value = self._supplier()
        return self._value

    @property
    def resolved(self) -> bool:
        return self._value is not _UNSET

    def __repr__(self) -> str:
        state = "resolved" if self.resolved else "pending"
        return f"DeferredReference({qualified_name(self._api)}, {state})"


__all__ = [
    "CircularPlaceholder",
    "DeferredReference",
    "make_placeholder",
    "placeholder_target",
]
