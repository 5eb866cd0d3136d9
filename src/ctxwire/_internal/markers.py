from __future__ import annotations

import types
from typing import TYPE_CHECKING, Annotated, Any, NamedTuple, TypeVar, Union, get_args, get_origin

T = TypeVar("T")
_ANNOTATED_MARKER_MIN_ARGS = 2


class InjectedMarker:
    """A marker used to indicate a parameter or field should be injected from the container.

    Used to identify parameters that need to be removed from callable signatures
    and class attributes that are filled after construction.
    """


class MaybeMarker:
    """Marker that indicates dependency is optional and may resolve to ``None``."""


class GroupMarker(NamedTuple):
    """Marker for collecting every member of a component group."""

    dependency_key: Any


class DeferredMarker(NamedTuple):
    """Marker for references resolved on first access instead of at construction."""

    dependency_key: Any


if TYPE_CHECKING:
    from ctxwire._internal.placeholders import DeferredReference

    Injected = Union[T, T]  # noqa: UP007,PYI016
    """Mark a parameter or class attribute for container-driven injection.

    At runtime ``Injected[T]`` becomes ``Annotated[T, InjectedMarker()]``.
    Container wrappers hide these parameters from the public callable signature;
    class attributes with this annotation are injected after construction.

    Examples:
        .. code-block:: python

            @container.inject
            def run(service: Injected[Service], value: int) -> str:
                return service.handle(value)
    """

    Maybe = T | None  # type: ignore[misc]
    """Mark a dependency as explicitly optional.

    At runtime ``Maybe[T]`` becomes ``Annotated[T, MaybeMarker()]``.
    """

    Group = tuple[T, ...]
    """Resolve every member of a component group.

    ``Group[T]`` type-checks as ``tuple[T, ...]`` and resolves to an ordered
    tuple of the members registered for ``T``.
    """

    Deferred = DeferredReference[T]
    """Resolve a dependency lazily.

    ``Deferred[T]`` resolves to a ``DeferredReference`` whose ``get()``
    resolves the dependency on first call and returns the same object after.
    """

else:

    class Injected:
        """Mark a parameter or class attribute for container-driven injection.

        At runtime ``Injected[T]`` resolves to ``Annotated[T, InjectedMarker()]``.

        Examples:
            .. code-block:: python

                @container.inject
                def run(service: Injected[Service], value: int) -> str:
                    return service.handle(value)

        """

        def __class_getitem__(cls, item: T) -> Annotated[T, InjectedMarker]:
            return _append_marker(item, InjectedMarker())

    class Maybe:
        """Mark a dependency as explicitly optional.

        At runtime ``Maybe[T]`` resolves to ``Annotated[T, MaybeMarker()]``.
        """

        def __class_getitem__(cls, item: T) -> Annotated[T, MaybeMarker]:
            return _append_marker(item, MaybeMarker())

    class Group:
        """Resolve every member of a component group.

        At runtime ``Group[T]`` resolves to
        ``Annotated[T, GroupMarker(dependency_key=T)]``. Qualifier tags attached
        to ``T`` through ``Annotated`` are kept as reference tags.

        Examples:
            .. code-block:: python

                @component_group
                class Plugin(ABC): ...


                class Host:
                    def __init__(self, plugins: Group[Plugin]) -> None:
                        self.plugins = plugins

        """

        def __class_getitem__(cls, item: Any) -> Any:
            base_key, metadata = _split_annotated(item)
            return _build_annotated((base_key, *metadata, GroupMarker(dependency_key=base_key)))

    class Deferred:
        """Resolve a dependency on first access.

        At runtime ``Deferred[T]`` resolves to
        ``Annotated[T, DeferredMarker(dependency_key=T)]`` and injects a
        ``DeferredReference``.
        """

        def __class_getitem__(cls, item: Any) -> Any:
            base_key, metadata = _split_annotated(item)
            return _build_annotated((base_key, *metadata, DeferredMarker(dependency_key=base_key)))


def annotation_metadata(annotation: Any) -> tuple[Any, ...]:
    """Return ``Annotated`` metadata items, or an empty tuple for plain annotations."""
    if get_origin(annotation) is not Annotated:
        return ()
    annotation_args = get_args(annotation)
    if len(annotation_args) < _ANNOTATED_MARKER_MIN_ARGS:
        return ()
    return tuple(annotation_args[1:])


def is_injected_annotation(annotation: Any) -> bool:
    """Return True when annotation is Annotated[..., InjectedMarker()]."""
    return any(isinstance(item, InjectedMarker) for item in annotation_metadata(annotation))


def is_maybe_annotation(annotation: Any) -> bool:
    """Return True when annotation is Annotated[..., MaybeMarker()]."""
    return any(isinstance(item, MaybeMarker) for item in annotation_metadata(annotation))


def is_group_annotation(annotation: Any) -> bool:
    """Return True when annotation is Annotated[..., GroupMarker(...)]."""
    return any(isinstance(item, GroupMarker) for item in annotation_metadata(annotation))


def is_deferred_annotation(annotation: Any) -> bool:
    """Return True when annotation is Annotated[..., DeferredMarker(...)]."""
    return any(isinstance(item, DeferredMarker) for item in annotation_metadata(annotation))


def strip_injected_annotation(annotation: Any) -> Any:
    """Strip Injected marker while preserving other Annotated metadata."""
    return _strip_marker(annotation, InjectedMarker)


def strip_maybe_annotation(annotation: Any) -> Any:
    """Strip Maybe marker while preserving non-maybe Annotated metadata."""
    return _strip_marker(annotation, MaybeMarker)


def optional_inner_type(annotation: Any) -> Any | None:
    """Return ``T`` for ``T | None`` / ``Optional[T]`` annotations, otherwise None."""
    origin = get_origin(annotation)
    if origin is not Union and origin is not types.UnionType:
        return None
    members = [arg for arg in get_args(annotation) if arg is not type(None)]
    if len(members) != 1 or len(members) == len(get_args(annotation)):
        return None
    return members[0]


def _strip_marker(annotation: Any, marker_type: type) -> Any:
    if get_origin(annotation) is not Annotated:
        return annotation
    annotation_args = get_args(annotation)
    parameter_type = annotation_args[0]
    metadata = annotation_args[1:]
    filtered_metadata = tuple(item for item in metadata if not isinstance(item, marker_type))
    if len(filtered_metadata) == len(metadata):
        return annotation
    if not filtered_metadata:
        return parameter_type
    return _build_annotated((parameter_type, *filtered_metadata))


def _split_annotated(item: Any) -> tuple[Any, tuple[Any, ...]]:
    if get_origin(item) is Annotated:
        args = get_args(item)
        return args[0], tuple(args[1:])
    return item, ()


def _append_marker(item: Any, marker: object) -> Any:
    inner, metadata = _split_annotated(item)
    return _build_annotated((inner, *metadata, marker))


def build_annotated_key(params: tuple[object, ...]) -> Any:
    """Return Annotated[...] with a pre-built params tuple (Py 3.10+ compatible)."""
    try:
        return Annotated.__class_getitem__(params)  # type: ignore[attr-defined]
    except AttributeError:
        return Annotated.__getitem__(params)  # type: ignore[attr-defined]


def _build_annotated(params: tuple[object, ...]) -> Any:
    return build_annotated_key(params)


__all__ = [
    "Deferred",
    "DeferredMarker",
    "Group",
    "GroupMarker",
    "Injected",
    "InjectedMarker",
    "Maybe",
    "MaybeMarker",
    "annotation_metadata",
    "build_annotated_key",
    "is_deferred_annotation",
    "is_group_annotation",
    "is_injected_annotation",
    "is_maybe_annotation",
    "optional_inner_type",
    "strip_injected_annotation",
    "strip_maybe_annotation",
]
