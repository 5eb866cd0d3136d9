from __future__ import annotations

import inspect
from typing import Any

from ctxwire._internal.factories import is_factory
from ctxwire._internal.qualifiers import Qualifier
from ctxwire._internal.type_checks import is_protocol_class
from ctxwire.exceptions import CtxWireBindingError


class BindingValidator:
    """Validates registrations before creating bindings."""

    def validate_implementation(self, implementation: object) -> None:
        """Validate that a class binding target is instantiable."""
        if not inspect.isclass(implementation):
            msg = f"Implementation must be a class, got {implementation!r}."
            raise CtxWireBindingError(msg)

        if is_protocol_class(implementation):
            msg = f"Implementation '{implementation.__qualname__}' cannot be a protocol."
            raise CtxWireBindingError(msg)

        if inspect.isabstract(implementation):
            msg = f"Implementation '{implementation.__qualname__}' cannot be an abstract class."
            raise CtxWireBindingError(msg)

    def validate_factory(self, factory: object) -> None:
        """Validate that a factory binding target implements a factory interface."""
        if not is_factory(factory):
            msg = (
                f"Factory {factory!r} must be a ComponentFactory or VariantFactory "
                "class or instance."
            )
            raise CtxWireBindingError(msg)

        if inspect.isclass(factory) and inspect.isabstract(factory):
            msg = f"Factory '{factory.__qualname__}' cannot be an abstract class."
            raise CtxWireBindingError(msg)

    def validate_instance(self, instance: object) -> None:
        """Validate that an instance binding target is an object."""
        if instance is None:
            msg = "Cannot bind None as an instance."
            raise CtxWireBindingError(msg)

    def validate_apis(self, apis: tuple[Any, ...], *, target: object) -> None:
        """Validate apis passed explicitly at registration."""
        for api in apis:
            if api is None:
                msg = f"Cannot bind {target!r} to api None."
                raise CtxWireBindingError(msg)

    def validate_tags(self, tags: tuple[Any, ...], *, target: object) -> None:
        """Validate qualifier tags passed at registration."""
        for tag in tags:
            if not isinstance(tag, Qualifier):
                msg = f"Tag {tag!r} for {target!r} is not a Qualifier instance."
                raise CtxWireBindingError(msg)

    def validate_qualifier_types(self, qualifier_types: tuple[Any, ...], *, target: object) -> None:
        """Validate accepted and ignored qualifier types passed at registration."""
        for qualifier_type in qualifier_types:
            if not (inspect.isclass(qualifier_type) and issubclass(qualifier_type, Qualifier)):
                msg = f"{qualifier_type!r} for {target!r} is not a Qualifier subclass."
                raise CtxWireBindingError(msg)
