from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, TypeVar

Q = TypeVar("Q", bound="Qualifier")


class Composition(Enum):
    """Define how repeated tags of one qualifier type combine along a path."""

    ALL = "all"
    """Keep every distinct tag instance in encounter order."""

    LAST = "last"
    """Keep only the most recently encountered tag instance."""

    IMMEDIATE = "immediate"
    """Keep only the tag declared at the nearest reference point.

    The tag is dropped as soon as the context crosses the next dependency
    reference.
    """

    NONE = "none"
    """Never contribute the tag to a context."""


class Qualifier:
    """Base class for qualifier tags.

    A qualifier tag is a piece of declarative metadata attached to a class
    (``@component(tags=...)``) or to a dependency reference
    (``Annotated[Api, Tag(...)]``). Components opt in to the tags they want
    to see with ``@component(context=[Tag])``.

    Subclasses choose their composition rule with a class keyword and should
    be hashable value objects, typically frozen dataclasses.

    Examples:
        .. code-block:: python

            @dataclass(frozen=True)
            class Setting(Qualifier, composition=Composition.LAST):
                name: str


            @component(context=[Setting])
            class Reader:
                def __init__(self, context: ComponentContext) -> None:
                    self.setting = context.get(Setting)

    """

    composition: ClassVar[Composition] = Composition.ALL

    def __init_subclass__(cls, *, composition: Composition | None = None, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if composition is not None:
            cls.composition = composition


QualifierType = type[Qualifier]
_Defined = tuple[tuple[QualifierType, tuple[Qualifier, ...]], ...]


def _type_name(tag_type: QualifierType) -> str:
    return f"{tag_type.__module__}.{tag_type.__qualname__}"


def _combine(present: tuple[Qualifier, ...], addition: Qualifier) -> tuple[Qualifier, ...]:
    if addition in present:
        return present
    return (*present, addition)


def _accepts(tag_type: QualifierType, accepted: tuple[QualifierType, ...]) -> bool:
    return any(issubclass(tag_type, candidate) for candidate in accepted)


@dataclass(frozen=True, slots=True)
class ComponentContext(Mapping[QualifierType, tuple[Qualifier, ...]]):
    """Expose the qualifier tags a component accepted at its point of construction.

    The context maps each accepted qualifier type to the tuple of tag
    instances that survived composition. Components receive it through a
    constructor parameter annotated with ``ComponentContext``; factories
    receive it as an argument.
    """

    entries: _Defined = ()

    def __getitem__(self, tag_type: QualifierType) -> tuple[Qualifier, ...]:
        for candidate, tags in self.entries:
            if candidate is tag_type:
                return tags
        raise KeyError(tag_type)

    def __iter__(self) -> Iterator[QualifierType]:
        return (tag_type for tag_type, _ in self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __repr__(self) -> str:
        return f"ComponentContext({self.key or 'empty'})"

    def get(self, tag_type: type[Q], default: Any = None) -> Any:  # type: ignore[override]
        """Return the last tag of ``tag_type`` or ``default`` when absent.

        Args:
            tag_type: Qualifier type to look up.
            default: Value returned when the context holds no such tag.

        """
        for candidate, tags in self.entries:
            if candidate is tag_type and tags:
                return tags[-1]
        return default

    def all(self, tag_type: type[Q]) -> tuple[Q, ...]:
        """Return every tag of ``tag_type`` in composition order."""
        for candidate, tags in self.entries:
            if candidate is tag_type:
                return tags  # type: ignore[return-value]
        return ()

    @property
    def key(self) -> str:
        """Canonical serialization used for cache keys."""
        return _serialize(self.entries)


def _serialize(entries: _Defined) -> str:
    parts = sorted(
        f"{_type_name(tag_type)}=[{', '.join(repr(tag) for tag in tags)}]"
        for tag_type, tags in entries
    )
    return "; ".join(parts)


@dataclass(frozen=True, slots=True)
class ContextDefinition:
    """Accumulate qualifier tags along a reference path.

    Every operation returns a new definition; the accumulator is a pure
    function of its inputs so equal inputs always produce equal cache keys.
    """

    defined: _Defined = field(default=())

    def expand(
        self,
        tags: Iterable[Qualifier],
        *,
        ignore: Iterable[QualifierType] = (),
    ) -> ContextDefinition:
        """Merge tags declared at a site into the definition.

        Ignored qualifier types are removed first, then each tag is combined
        according to its composition rule.

        Args:
            tags: Tag instances declared at the class or reference site.
            ignore: Qualifier types the site removes from the inbound context.

        """
        ignored = tuple(ignore)
        tags = tuple(tags)
        if not ignored and not tags:
            return self

        defined = {
            tag_type: present
            for tag_type, present in self.defined
            if not (ignored and _accepts(tag_type, ignored))
        }
        for tag in tags:
            tag_type = type(tag)
            composition = tag_type.composition
            if composition is Composition.NONE:
                continue
            if composition is Composition.ALL and tag_type in defined:
                defined[tag_type] = _combine(defined[tag_type], tag)
            else:
                defined[tag_type] = (tag,)
        return ContextDefinition(tuple(defined.items()))

    def advance(self) -> ContextDefinition:
        """Cross a dependency reference, dropping ``IMMEDIATE`` tags."""
        if not any(tag_type.composition is Composition.IMMEDIATE for tag_type, _ in self.defined):
            return self
        return ContextDefinition(
            tuple(
                (tag_type, tags)
                for tag_type, tags in self.defined
                if tag_type.composition is not Composition.IMMEDIATE
            ),
        )

    def accept(self, accepted: Iterable[QualifierType]) -> ComponentContext:
        """Filter the definition down to the qualifier types a site accepts.

        Args:
            accepted: Qualifier types declared by the consuming site. A tag is
                accepted when its type is, or subclasses, one of them.

        """
        accepted_types = tuple(accepted)
        if not accepted_types:
            return ComponentContext()
        return ComponentContext(
            tuple(
                (tag_type, tags)
                for tag_type, tags in self.defined
                if tags and _accepts(tag_type, accepted_types)
            ),
        )

    def types(self) -> tuple[QualifierType, ...]:
        """Return qualifier types currently defined."""
        return tuple(tag_type for tag_type, _ in self.defined)

    def __bool__(self) -> bool:
        return bool(self.defined)

    def __str__(self) -> str:
        return _serialize(self.defined)


EMPTY_CONTEXT = ContextDefinition()


__all__ = [
    "EMPTY_CONTEXT",
    "ComponentContext",
    "Composition",
    "ContextDefinition",
    "Qualifier",
    "QualifierType",
]
