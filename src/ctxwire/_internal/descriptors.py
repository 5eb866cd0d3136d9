from __future__ import annotations

import inspect
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from inspect import Parameter
from typing import Annotated, Any, TypeVar, get_args, get_origin, get_type_hints, overload
from weakref import WeakKeyDictionary

from ctxwire._internal.markers import (
    DeferredMarker,
    GroupMarker,
    MaybeMarker,
    annotation_metadata,
    is_injected_annotation,
    optional_inner_type,
    strip_injected_annotation,
)
from ctxwire._internal.qualifiers import ComponentContext, Qualifier, QualifierType
from ctxwire.exceptions import CtxWireBindingError, CtxWireResolutionError

C = TypeVar("C", bound=type)
F = TypeVar("F")

COMPONENT_ATTRIBUTE = "__ctxwire_component__"
GROUP_ATTRIBUTE = "__ctxwire_group__"
CONSTRUCTOR_ATTRIBUTE = "__ctxwire_constructor__"

_IMPLICIT_FIRST_PARAMETER_NAMES = frozenset({"self", "cls"})
_VARIADIC_KINDS = frozenset({Parameter.VAR_POSITIONAL, Parameter.VAR_KEYWORD})


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


@dataclass(frozen=True, slots=True, kw_only=True)
class ComponentSpec:
    """Registration metadata attached to a class by ``@component``."""

    apis: tuple[Any, ...] = ()
    stateful: bool = False
    primary: bool = True
    accepts: tuple[QualifierType, ...] = ()
    tags: tuple[Qualifier, ...] = ()
    groups: tuple[Any, ...] = ()
    ignores: tuple[QualifierType, ...] = ()


_DEFAULT_SPEC = ComponentSpec()


@dataclass(frozen=True, slots=True)
class ConstructorMarker:
    inject: bool


@overload
def component(cls: C, /) -> C: ...


@overload
def component(
    *,
    api: Any | Iterable[Any] = (),
    stateful: bool = False,
    primary: bool = True,
    context: Iterable[QualifierType] = (),
    tags: Iterable[Qualifier] = (),
    groups: Iterable[Any] = (),
    ignore: Iterable[QualifierType] = (),
) -> Callable[[C], C]: ...


def component(
    cls: Any = None,
    /,
    *,
    api: Any | Iterable[Any] = (),
    stateful: bool = False,
    primary: bool = True,
    context: Iterable[QualifierType] = (),
    tags: Iterable[Qualifier] = (),
    groups: Iterable[Any] = (),
    ignore: Iterable[QualifierType] = (),
) -> Any:
    """Attach registration metadata to a component class.

    The metadata is read by ``Container.bind`` whenever the corresponding
    keyword argument is not passed explicitly.

    Args:
        cls: Class being decorated when used without parentheses.
        api: Capability type or types the class is registered for. Defaults
            to the class itself.
        stateful: Build a fresh instance for every reference instead of
            caching one per context.
        primary: Register with primary precedence. Fallback registrations
            yield to primary ones for the same api.
        context: Qualifier types the component accepts from its reference
            context.
        tags: Qualifier tags contributed to the context of the component's
            own dependencies.
        groups: Additional component groups the class is a member of.
        ignore: Qualifier types removed from the context before the class's
            own tags are applied.

    Returns:
        The decorated class, or a decorator when called with keyword arguments.

    Examples:
        .. code-block:: python

            @component(api=Storage, context=[Region])
            class RegionalStorage(Storage):
                def __init__(self, context: ComponentContext) -> None:
                    self.region = context.get(Region)

    """
    spec = ComponentSpec(
        apis=_as_tuple(api),
        stateful=stateful,
        primary=primary,
        accepts=tuple(context),
        tags=tuple(tags),
        groups=tuple(groups),
        ignores=tuple(ignore),
    )

    def decorator(target: C) -> C:
        if not inspect.isclass(target):
            msg = f"@component can only decorate classes, got {target!r}."
            raise CtxWireBindingError(msg)
        for tag in spec.tags:
            _validate_tag(tag, owner=target)
        setattr(target, COMPONENT_ATTRIBUTE, spec)
        return target

    if cls is not None:
        return decorator(cls)
    return decorator


def component_group(cls: C) -> C:
    """Mark an interface as a component group.

    Every bound class whose MRO contains the decorated interface becomes a
    member of the group and can be collected with ``Group[Interface]``.

    Examples:
        .. code-block:: python

            @component_group
            class Listener(ABC):
                @abstractmethod
                def notify(self, event: str) -> None: ...

    """
    setattr(cls, GROUP_ATTRIBUTE, cls)
    return cls


@overload
def constructor(function: F, /) -> F: ...


@overload
def constructor(*, inject: bool = ...) -> Callable[[F], F]: ...


def constructor(function: Any = None, /, *, inject: bool = False) -> Any:
    """Declare an alternative constructor candidate.

    Decorate a ``classmethod`` to make it a constructor candidate next to
    ``__init__``. When a class has more than one candidate, exactly one of
    them must be marked with ``inject=True``; ``__init__`` itself may carry
    the mark.

    Examples:
        .. code-block:: python

            class Client:
                def __init__(self, url: str) -> None:
                    self.url = url

                @constructor(inject=True)
                @classmethod
                def from_settings(cls, settings: Settings) -> Client:
                    return cls(settings.url)

    """
    marker = ConstructorMarker(inject=inject)

    def decorator(target: F) -> F:
        underlying = getattr(target, "__func__", target)
        setattr(underlying, CONSTRUCTOR_ATTRIBUTE, marker)
        return target

    if function is not None:
        return decorator(function)
    return decorator


def component_spec(cls: type) -> ComponentSpec:
    """Return ``@component`` metadata declared on ``cls`` itself."""
    spec = cls.__dict__.get(COMPONENT_ATTRIBUTE)
    if isinstance(spec, ComponentSpec):
        return spec
    return _DEFAULT_SPEC


def group_interfaces(cls: type) -> tuple[type, ...]:
    """Return every ``@component_group`` interface in the MRO of ``cls``."""
    return tuple(base for base in inspect.getmro(cls) if base.__dict__.get(GROUP_ATTRIBUTE) is base)


class ReferenceKind(Enum):
    """Classify how a dependency reference is satisfied."""

    INSTANCE = "instance"
    GROUP = "group"
    DEFERRED = "deferred"
    CONTEXT = "context"
    CONTAINER = "container"


@dataclass(frozen=True, slots=True)
class Reference:
    """Describe one dependency reference of a constructor, field or callable."""

    name: str
    api: Any
    kind: ReferenceKind = ReferenceKind.INSTANCE
    optional: bool = False
    tags: tuple[Qualifier, ...] = ()
    default: Any = MISSING
    parameter_kind: Any = Parameter.POSITIONAL_OR_KEYWORD

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING

    @property
    def is_static(self) -> bool:
        """Return True when the reference is satisfied without a binding lookup."""
        return self.kind in (ReferenceKind.CONTEXT, ReferenceKind.CONTAINER)


@dataclass(frozen=True, slots=True)
class ConstructorDescriptor:
    """A constructor candidate and the references it declares."""

    name: str
    references: tuple[Reference, ...]
    marked: bool

    def invoke(self, cls: type, arguments: dict[str, Any]) -> Any:
        if self.name == "__init__":
            return _call(cls, self.references, arguments)
        return _call(getattr(cls, self.name), self.references, arguments)


@dataclass(frozen=True, slots=True)
class ClassDescriptor:
    """Constructor candidates, injected fields and group memberships of a class.

    Computed once per class and shared by every container.
    """

    cls: type
    constructors: tuple[ConstructorDescriptor, ...]
    fields: tuple[Reference, ...]
    groups: tuple[type, ...]
    injection_constructor: ConstructorDescriptor | None = None
    ambiguity_reason: str | None = None
    all_references: tuple[Reference, ...] = field(default=())


_DESCRIPTORS: WeakKeyDictionary[type, ClassDescriptor] = WeakKeyDictionary()
_DESCRIPTORS_LOCK = threading.Lock()


def describe_class(cls: type) -> ClassDescriptor:
    """Return the cached descriptor of ``cls``, computing it on first use."""
    with _DESCRIPTORS_LOCK:
        descriptor = _DESCRIPTORS.get(cls)
    if descriptor is not None:
        return descriptor

    constructors = _constructor_candidates(cls)
    fields = injected_fields(cls)
    injection_constructor, ambiguity_reason = _select_constructor(cls, constructors)
    seen: dict[tuple[str, str], Reference] = {}
    for candidate in constructors:
        for reference in candidate.references:
            seen.setdefault((candidate.name, reference.name), reference)
    descriptor = ClassDescriptor(
        cls=cls,
        constructors=constructors,
        fields=fields,
        groups=group_interfaces(cls),
        injection_constructor=injection_constructor,
        ambiguity_reason=ambiguity_reason,
        all_references=(*seen.values(), *fields),
    )
    with _DESCRIPTORS_LOCK:
        return _DESCRIPTORS.setdefault(cls, descriptor)


def describe_callable(
    function: Callable[..., Any],
    *,
    skip_first_parameter: bool = False,
) -> tuple[Reference, ...]:
    """Return references declared by the parameters of ``function``."""
    name = getattr(function, "__qualname__", repr(function))
    parameters = tuple(inspect.signature(function).parameters.values())
    if skip_first_parameter and parameters and parameters[0].name in _IMPLICIT_FIRST_PARAMETER_NAMES:
        parameters = parameters[1:]
    annotations, annotation_error = _resolved_type_hints(function)

    references: list[Reference] = []
    for parameter in parameters:
        if parameter.kind in _VARIADIC_KINDS:
            continue
        annotation = annotations.get(parameter.name, parameter.annotation)
        if annotation is Parameter.empty or isinstance(annotation, str):
            if parameter.default is not Parameter.empty:
                continue
            msg = (
                f"Unable to infer dependency for required parameter '{parameter.name}' "
                f"of '{name}'. Add a type annotation."
            )
            if annotation_error is None:
                raise CtxWireResolutionError(msg)
            msg = f"{msg} Original annotation error: {annotation_error}"
            raise CtxWireResolutionError(msg) from annotation_error
        references.append(
            parse_reference(
                parameter.name,
                annotation,
                default=MISSING if parameter.default is Parameter.empty else parameter.default,
                parameter_kind=parameter.kind,
            ),
        )
    return tuple(references)


def parse_reference(
    name: str,
    annotation: Any,
    *,
    default: Any = MISSING,
    parameter_kind: Any = Parameter.POSITIONAL_OR_KEYWORD,
) -> Reference:
    """Translate a parameter or field annotation into a ``Reference``."""
    annotation = strip_injected_annotation(annotation)
    optional = default is not MISSING
    inner = optional_inner_type(annotation)
    if inner is not None:
        optional = True
        annotation = inner

    metadata = annotation_metadata(annotation)
    api = get_args(annotation)[0] if get_origin(annotation) is Annotated else annotation
    kind = ReferenceKind.INSTANCE
    tags: list[Qualifier] = []
    for item in metadata:
        if isinstance(item, MaybeMarker):
            optional = True
        elif isinstance(item, GroupMarker):
            kind = ReferenceKind.GROUP
        elif isinstance(item, DeferredMarker):
            kind = ReferenceKind.DEFERRED
        elif isinstance(item, Qualifier):
            tags.append(item)

    if api is ComponentContext:
        kind = ReferenceKind.CONTEXT
    elif _is_container_type(api):
        kind = ReferenceKind.CONTAINER

    return Reference(
        name=name,
        api=api,
        kind=kind,
        optional=optional,
        tags=tuple(tags),
        default=default,
        parameter_kind=parameter_kind,
    )


def has_instance_value(instance: Any, name: str) -> bool:
    """Return True when ``name`` is already set on the instance itself."""
    instance_dict = getattr(instance, "__dict__", None)
    if instance_dict is not None:
        return name in instance_dict
    try:
        object.__getattribute__(instance, name)
    except AttributeError:
        return False
    return True


def _constructor_candidates(cls: type) -> tuple[ConstructorDescriptor, ...]:
    candidates: list[ConstructorDescriptor] = []
    seen: set[str] = set()
    for base in inspect.getmro(cls):
        for attribute_name, attribute in base.__dict__.items():
            if attribute_name in seen or not isinstance(attribute, classmethod):
                continue
            marker = getattr(attribute.__func__, CONSTRUCTOR_ATTRIBUTE, None)
            if marker is None:
                continue
            seen.add(attribute_name)
            candidates.append(
                ConstructorDescriptor(
                    name=attribute_name,
                    references=describe_callable(attribute.__func__, skip_first_parameter=True),
                    marked=marker.inject,
                ),
            )

    init = cls.__init__
    if init is object.__init__:
        if not candidates:
            candidates.insert(0, ConstructorDescriptor(name="__init__", references=(), marked=False))
        return tuple(candidates)

    marker = getattr(init, CONSTRUCTOR_ATTRIBUTE, None)
    candidates.insert(
        0,
        ConstructorDescriptor(
            name="__init__",
            references=describe_callable(init, skip_first_parameter=True),
            marked=bool(marker and marker.inject),
        ),
    )
    return tuple(candidates)


def _select_constructor(
    cls: type,
    candidates: tuple[ConstructorDescriptor, ...],
) -> tuple[ConstructorDescriptor | None, str | None]:
    if len(candidates) == 1:
        return candidates[0], None

    marked = [candidate for candidate in candidates if candidate.marked]
    if len(marked) == 1:
        return marked[0], None

    names = ", ".join(candidate.name for candidate in candidates)
    if marked:
        reason = (
            f"Ambiguous constructor for '{cls.__qualname__}': more than one candidate is "
            f"marked with @constructor(inject=True) ({', '.join(c.name for c in marked)})."
        )
    else:
        reason = (
            f"Ambiguous constructor for '{cls.__qualname__}': candidates {names} and none is "
            "marked with @constructor(inject=True)."
        )
    return None, reason


def injected_fields(cls: type) -> tuple[Reference, ...]:
    try:
        hints = get_type_hints(cls, include_extras=True)
    except (AttributeError, NameError, TypeError) as error:
        raw = [
            annotation
            for base in reversed(inspect.getmro(cls))
            for annotation in base.__dict__.get("__annotations__", {}).values()
        ]
        if any(isinstance(annotation, str) and "Injected[" in annotation for annotation in raw):
            msg = f"Unable to evaluate injected fields of '{cls.__qualname__}': {error}"
            raise CtxWireResolutionError(msg) from error
        hints = {
            name: annotation
            for base in reversed(inspect.getmro(cls))
            for name, annotation in base.__dict__.get("__annotations__", {}).items()
            if not isinstance(annotation, str)
        }
    return tuple(
        parse_reference(name, annotation)
        for name, annotation in hints.items()
        if is_injected_annotation(annotation)
    )


def _resolved_type_hints(function: Callable[..., Any]) -> tuple[dict[str, Any], Exception | None]:
    try:
        return get_type_hints(function, include_extras=True), None
    except (AttributeError, NameError, TypeError) as error:
        return {}, error


def _call(target: Callable[..., Any], references: tuple[Reference, ...], arguments: dict[str, Any]) -> Any:
    args: list[Any] = []
    kwargs: dict[str, Any] = {}
    for reference in references:
        if reference.name not in arguments:
            continue
        if reference.parameter_kind is Parameter.POSITIONAL_ONLY:
            args.append(arguments[reference.name])
        else:
            kwargs[reference.name] = arguments[reference.name]
    return target(*args, **kwargs)


def _is_container_type(api: Any) -> bool:
    from ctxwire._internal.container import Container  # noqa: PLC0415

    return inspect.isclass(api) and issubclass(api, Container)


def _validate_tag(tag: Any, *, owner: type) -> None:
    if not isinstance(tag, Qualifier):
        msg = f"Tag {tag!r} declared on '{owner.__qualname__}' is not a Qualifier instance."
        raise CtxWireBindingError(msg)


def _as_tuple(value: Any | Iterable[Any]) -> tuple[Any, ...]:
    if isinstance(value, tuple | list | set | frozenset):
        return tuple(value)
    return (value,)


__all__ = [
    "MISSING",
    "ClassDescriptor",
    "ComponentSpec",
    "ConstructorDescriptor",
    "Reference",
    "ReferenceKind",
    "component",
    "component_group",
    "component_spec",
    "constructor",
    "describe_callable",
    "describe_class",
    "group_interfaces",
    "has_instance_value",
    "injected_fields",
    "parse_reference",
]
