from ctxwire._internal.markers import (
    Deferred,
    DeferredMarker,
    Group,
    GroupMarker,
    Injected,
    InjectedMarker,
    Maybe,
    MaybeMarker,
)
from ctxwire._internal.placeholders import CircularPlaceholder, DeferredReference

__all__ = [
    "CircularPlaceholder",
    "Deferred",
    "DeferredMarker",
    "DeferredReference",
    "Group",
    "GroupMarker",
    "Injected",
    "InjectedMarker",
    "Maybe",
    "MaybeMarker",
]
