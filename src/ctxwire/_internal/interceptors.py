from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import Any, TypeAlias

from ctxwire._internal.descriptors import component_group, component_spec
from ctxwire._internal.qualifiers import ComponentContext, ContextDefinition, QualifierType
from ctxwire._internal.type_checks import qualified_name
from ctxwire.exceptions import CtxWireResolutionError

Dependency: TypeAlias = Callable[[], Any]
"""Zero-argument callable returning the (possibly replaced) dependency."""


@component_group
class ComponentInterceptor(ABC):
    """Replace dependencies before they are injected.

    Interceptors are components: bind them like any other class and every
    container that sees the binding runs them for each dependency reference
    it injects. Dependencies of interceptors themselves are never
    intercepted.

    An interceptor declaring ``@component(context=[...])`` only runs for
    references whose context holds a tag of every listed qualifier type and
    receives the reference context filtered down to those types. Interceptors
    keyed on the most recently defined qualifier run first, so they wrap the
    dependency innermost; interceptors without context run last.

    Examples:
        .. code-block:: python

            @component(context=[Audited])
            class AuditInterceptor(ComponentInterceptor):
                def intercept(self, api, context, dependency):
                    label = context.get(Audited).label
                    return lambda: AuditedProxy(dependency(), label)

    """

    @abstractmethod
    def intercept(self, api: Any, context: ComponentContext, dependency: Dependency) -> Dependency | None:
        """Return the dependency to inject in place of ``dependency``.

        Args:
            api: The type the reference asks for.
            context: Reference context filtered by the interceptor's acceptance.
            dependency: Callable returning the dependency produced so far. It
                may only be called from the returned callable, never from
                ``intercept`` itself.

        Returns:
            ``dependency`` to leave it unchanged, a replacement callable, or
            ``None`` to leave the reference unresolved.

        """


def select_interceptors(
    interceptors: Iterable[ComponentInterceptor],
    context: ContextDefinition,
) -> list[tuple[ComponentInterceptor, ComponentContext]]:
    """Return the interceptors that apply to a reference context, in application order.

    Args:
        interceptors: Members of the ``ComponentInterceptor`` group, in group order.
        context: Context at the dependency reference.

    """
    defined = context.types()
    selected: list[tuple[int, int, ComponentInterceptor, ComponentContext]] = []
    for position, interceptor in enumerate(interceptors):
        accepts = component_spec(type(interceptor)).accepts
        accepted = context.accept(accepts)
        if not all(_present(required, accepted) for required in accepts):
            continue
        selected.append((-_last_index(accepts, defined), position, interceptor, accepted))
    selected.sort(key=lambda entry: entry[:2])
    return [(interceptor, accepted) for _, _, interceptor, accepted in selected]


def _present(required: QualifierType, accepted: ComponentContext) -> bool:
    return any(issubclass(tag_type, required) for tag_type in accepted)


def _last_index(accepts: tuple[QualifierType, ...], defined: tuple[QualifierType, ...]) -> int:
    indexes = [
        index
        for index, tag_type in enumerate(defined)
        if any(issubclass(tag_type, required) for required in accepts)
    ]
    return max(indexes, default=-1)


class InterceptorChain:
    """Thread one resolved dependency through its interceptors.

    The innermost callable refuses to run until the chain is released, which
    happens once every interceptor has returned.
    """

    def __init__(self, api: Any, value: Any) -> None:
        self.api = api
        self.head: Dependency = self._create
        self._value = value
        self._released = False

    def release(self) -> Any:
        self._released = True
        return self.head()

    def _create(self) -> Any:
        if not self._released:
            msg = f"Dependency '{qualified_name(self.api)}' accessed during interception"
            raise CtxWireResolutionError(msg)
        return self._value


__all__ = [
    "ComponentInterceptor",
    "Dependency",
    "InterceptorChain",
    "select_interceptors",
]
