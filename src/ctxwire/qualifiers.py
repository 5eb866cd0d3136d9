from ctxwire._internal.qualifiers import (
    EMPTY_CONTEXT,
    ComponentContext,
    Composition,
    ContextDefinition,
    Qualifier,
    QualifierType,
)

__all__ = [
    "EMPTY_CONTEXT",
    "ComponentContext",
    "Composition",
    "ContextDefinition",
    "Qualifier",
    "QualifierType",
]
