from ctxwire.components import component, component_group, constructor
from ctxwire.container import Container, PackageBindings
from ctxwire.exceptions import (
    CtxWireBindingError,
    CtxWireCircularReferencesError,
    CtxWireError,
    CtxWireInstantiationError,
    CtxWireResolutionError,
)
from ctxwire.factories import ComponentFactory, VariantFactory
from ctxwire.interceptors import ComponentInterceptor, Dependency
from ctxwire.lock_mode import LockMode
from ctxwire.markers import Deferred, DeferredReference, Group, Injected, Maybe
from ctxwire.observers import CompositeObserver, DependencyPath, InstanceReference, Observer
from ctxwire.qualifiers import ComponentContext, Composition, Qualifier
from ctxwire.scope import ScopeKind

__all__ = [
    "ComponentContext",
    "ComponentFactory",
    "ComponentInterceptor",
    "CompositeObserver",
    "Composition",
    "Container",
    "CtxWireBindingError",
    "CtxWireCircularReferencesError",
    "CtxWireError",
    "CtxWireInstantiationError",
    "CtxWireResolutionError",
    "Deferred",
    "DeferredReference",
    "Dependency",
    "DependencyPath",
    "Group",
    "Injected",
    "InstanceReference",
    "LockMode",
    "Maybe",
    "Observer",
    "PackageBindings",
    "Qualifier",
    "ScopeKind",
    "VariantFactory",
    "component",
    "component_group",
    "constructor",
]
