from __future__ import annotations

import inspect
import types
from typing import Any, TypeGuard


def is_runtime_class(candidate: object) -> TypeGuard[type[Any]]:
    """Return true when candidate is a runtime class safe for class-only operations.

    Args:
        candidate: Value being checked for eligibility or runtime type constraints.

    """
    return isinstance(candidate, type) and not isinstance(candidate, types.GenericAlias)


def is_protocol_class(candidate: object) -> bool:
    """Return true when candidate is a ``typing.Protocol`` class definition."""
    return is_runtime_class(candidate) and bool(getattr(candidate, "_is_protocol", False))


def is_capability_interface(candidate: object) -> bool:
    """Return true when candidate is an abstract capability type.

    Capability types are abstract base classes with abstract members or
    protocol classes. Only references typed with a capability type may be
    satisfied by a circular placeholder.

    Args:
        candidate: Static type of a dependency reference.

    """
    if not is_runtime_class(candidate):
        return False
    return inspect.isabstract(candidate) or is_protocol_class(candidate)


def qualified_name(candidate: object) -> str:
    """Return a readable name for types, annotated keys and other values."""
    if is_runtime_class(candidate):
        return candidate.__qualname__
    return repr(candidate)


__all__ = [
    "is_capability_interface",
    "is_protocol_class",
    "is_runtime_class",
    "qualified_name",
]
