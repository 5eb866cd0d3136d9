from ctxwire._internal.integrations.pytest_plugin import (
    CONTAINER_KEY,
    _ctxwire_state,
    ctxwire_container,
    pytest_pycollect_makeitem,
    pytest_pyfunc_call,
)

__all__ = [
    "CONTAINER_KEY",
    "_ctxwire_state",
    "ctxwire_container",
    "pytest_pycollect_makeitem",
    "pytest_pyfunc_call",
]
