from ctxwire._internal.observers import CompositeObserver, InstanceReference, Observer
from ctxwire._internal.path import DependencyPath, PathElement

__all__ = [
    "CompositeObserver",
    "DependencyPath",
    "InstanceReference",
    "Observer",
    "PathElement",
]
