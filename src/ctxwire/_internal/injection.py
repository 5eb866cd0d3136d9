from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, get_type_hints

from ctxwire._internal.descriptors import MISSING, Reference, parse_reference
from ctxwire._internal.markers import is_injected_annotation


@dataclass(frozen=True, slots=True)
class InjectionPlan:
    """Describe which parameters of a callable are filled from a container."""

    signature: inspect.Signature
    """Signature of the callable as declared."""
    public_signature: inspect.Signature
    """Declared signature without the injected parameters."""
    references: tuple[Reference, ...]
    """References of the ``Injected[...]`` parameters, in declaration order."""

    @property
    def injects(self) -> bool:
        return bool(self.references)


def plan_injection(function: Callable[..., Any]) -> InjectionPlan:
    """Build the injection plan of ``function``.

    Parameters whose annotation cannot be evaluated are left to the caller,
    as are parameters without an ``Injected[...]`` annotation.
    """
    signature = inspect.signature(function)
    try:
        hints = get_type_hints(function, include_extras=True)
    except (AttributeError, NameError, TypeError):
        hints = {}

    references: list[Reference] = []
    for parameter in signature.parameters.values():
        annotation = hints.get(parameter.name, parameter.annotation)
        if isinstance(annotation, str) or not is_injected_annotation(annotation):
            continue
        references.append(
            parse_reference(
                parameter.name,
                annotation,
                default=MISSING if parameter.default is inspect.Parameter.empty else parameter.default,
                parameter_kind=parameter.kind,
            ),
        )

    injected = {reference.name for reference in references}
    public_signature = signature.replace(
        parameters=[parameter for parameter in signature.parameters.values() if parameter.name not in injected],
    )
    return InjectionPlan(signature=signature, public_signature=public_signature, references=tuple(references))


__all__ = ["InjectionPlan", "plan_injection"]
