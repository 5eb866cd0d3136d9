from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ctxwire._internal.path import DependencyPath


class CtxWireError(Exception):
    """Represent a base class for all ctxwire-specific failures.

    Catch this type when you want to handle any ctxwire error path without
    matching each concrete exception class individually.
    """


class CtxWireBindingError(CtxWireError):
    """Signal an invalid or conflicting registration.

    Raised by ``Container.bind``, ``Container.bind_instance`` and
    ``Container.bind_factory`` when the target cannot be instantiated (not a
    class, abstract, a protocol), when a factory does not implement a factory
    protocol, or when a binding with the same precedence already exists for
    the api in the same container.

    Registration errors are never retried; fix the registration instead.
    """


class CtxWireResolutionError(CtxWireError):
    """Signal that a dependency could not be resolved.

    Typical triggers are a missing mandatory dependency, a class with an
    ambiguous constructor, a factory refusing to produce a component or a
    closed container.

    The dependency path at the point of failure is attached once, where the
    error is raised, and is available as :attr:`path`.
    """

    def __init__(self, message: str, *, path: DependencyPath | None = None) -> None:
        self.path = path
        if path is not None and len(path):
            message = f"{message} (path: {path})"
        super().__init__(message)


class CtxWireCircularReferencesError(CtxWireResolutionError):
    """Signal an unsatisfiable circular dependency.

    Raised when a concrete class is referenced while it is still being
    constructed, when a component group member depends on its own group, or
    when a circular placeholder is used before its target finished
    construction.

    Typical fixes include referencing the dependency through an abstract
    capability type (which allows a placeholder) or through ``Deferred[...]``.
    """


class CtxWireInstantiationError(CtxWireResolutionError):
    """Signal that a constructor or factory body raised an exception.

    The original exception is available as :attr:`cause` and as
    ``__cause__``; the error distinguishes user-code failures from failures
    detected by the engine itself.
    """

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException,
        path: DependencyPath | None = None,
    ) -> None:
        self.cause = cause
        super().__init__(message, path=path)
