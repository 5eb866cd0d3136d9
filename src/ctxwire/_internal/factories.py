from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ctxwire._internal.container import Container
    from ctxwire._internal.qualifiers import ComponentContext


class ComponentFactory(ABC):
    """Produce component instances from the reference context.

    A factory is bound with ``Container.bind_factory`` and is itself a
    component: it is built once per owning container (its constructor
    dependencies are injected) and then asked for one product per distinct
    accepted context. Declare the accepted qualifier types with
    ``@component(context=[...])`` on the factory class or ``accepts=`` at
    registration.

    Examples:
        .. code-block:: python

            @component(context=[Region])
            class StorageFactory(ComponentFactory):
                def create(self, context: ComponentContext, container: Container) -> Storage | None:
                    region = context.get(Region)
                    if region is None:
                        return None
                    return Storage(region.name)

    """

    @abstractmethod
    def create(self, context: ComponentContext, container: Container) -> Any | None:
        """Return a new component, or ``None`` to refuse.

        Args:
            context: Reference context filtered by the factory's acceptance.
            container: Isolated child container created for this product.

        """


class VariantFactory(ABC):
    """Configure a child container that produces a variant of a component.

    A variant factory receives an isolated child container and may bind
    additional components into it. The api is then resolved from the
    container it returns; when that container does not bind the api itself,
    the class or instance binding the factory wraps is resolved there.
    """

    @abstractmethod
    def new_component(self, container: Container, context: ComponentContext) -> Container | None:
        """Return the container to resolve the api from, or ``None`` to refuse.

        Args:
            container: Isolated child container created for this product.
            context: Reference context filtered by the factory's acceptance.

        """


def is_factory(target: Any) -> bool:
    """Return True when ``target`` is a factory class or factory instance."""
    if inspect.isclass(target):
        return issubclass(target, ComponentFactory | VariantFactory)
    return isinstance(target, ComponentFactory | VariantFactory)


def is_variant_factory(target: Any) -> bool:
    if inspect.isclass(target):
        return issubclass(target, VariantFactory)
    return isinstance(target, VariantFactory)


__all__ = [
    "ComponentFactory",
    "VariantFactory",
    "is_factory",
    "is_variant_factory",
]
