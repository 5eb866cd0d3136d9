from __future__ import annotations

import functools
import importlib
import warnings
from typing import Any

from ctxwire._internal.type_checks import is_runtime_class

_SETTINGS_MODULES = ("pydantic_settings", "pydantic.v1")
_LEGACY_PYDANTIC_WARNING = r"Core Pydantic V1 functionality isn't compatible with Python 3\.14 or greater\."


@functools.cache
def settings_bases() -> tuple[type[Any], ...]:
    """Return the installed ``BaseSettings`` classes, modern one first.

    The legacy ``pydantic.v1`` base is included while the interpreter still
    supports it. The result is empty when neither package is installed.
    """
    bases: list[type[Any]] = []
    for module_name in _SETTINGS_MODULES:
        with warnings.catch_warnings():
            warnings.filterwarnings("ignore", message=_LEGACY_PYDANTIC_WARNING, category=UserWarning)
            try:
                module = importlib.import_module(module_name)
            except ImportError:
                continue
        base = getattr(module, "BaseSettings", None)
        if isinstance(base, type) and base not in bases:
            bases.append(base)
    return tuple(bases)


def is_pydantic_settings_subclass(candidate: object) -> bool:
    """Return whether ``candidate`` is a settings model ctxwire loads on demand.

    A settings model requested without a binding is instantiated once, so it
    reads its environment at that moment, and bound as an instance in the
    root container.

    Args:
        candidate: Api being resolved.

    Returns:
        ``True`` for strict subclasses of an installed ``BaseSettings``;
        ``False`` for everything else, including the bases themselves.

    """
    bases = settings_bases()
    if not bases or not is_runtime_class(candidate) or candidate in bases:
        return False
    return issubclass(candidate, bases)


__all__ = [
    "is_pydantic_settings_subclass",
    "settings_bases",
]
