from ctxwire._internal.bindings import Cardinality, ScopeKind

__all__ = ["Cardinality", "ScopeKind"]
