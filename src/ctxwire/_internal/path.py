from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ctxwire._internal.qualifiers import EMPTY_CONTEXT, ContextDefinition
from ctxwire._internal.type_checks import qualified_name

_UNSET: Any = object()


class FrameState(Enum):
    """Lifecycle of a resolution frame."""

    PENDING = "pending"
    ACTIVE = "active"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass(slots=True, eq=False)
class ResolutionFrame:
    """One step of the reference chain currently being resolved."""

    api: Any
    """The type that was asked for."""
    bound_type: Any
    """The concrete type, factory type or group api satisfying the request."""
    identity: tuple[Any, ...]
    """Cycle identity: the bound type within its owning container."""
    context: ContextDefinition = EMPTY_CONTEXT
    state: FrameState = FrameState.PENDING
    instance: Any = _UNSET
    error: BaseException | None = None
    group: bool = False

    @property
    def in_progress(self) -> bool:
        return self.state in (FrameState.PENDING, FrameState.ACTIVE)

    @property
    def has_instance(self) -> bool:
        return self.instance is not _UNSET

    def resolve(self, instance: Any) -> None:
        self.instance = instance
        self.state = FrameState.RESOLVED


@dataclass(frozen=True, slots=True)
class PathElement:
    """Snapshot of one frame in a ``DependencyPath``."""

    api: Any
    type: Any
    context: ContextDefinition = EMPTY_CONTEXT

    def __str__(self) -> str:
        if self.api is self.type:
            text = qualified_name(self.api)
        else:
            text = f"{qualified_name(self.api)}={qualified_name(self.type)}"
        if self.context:
            text = f"{text} {{{self.context}}}"
        return text


@dataclass(frozen=True, slots=True)
class DependencyPath:
    """Immutable chain of references from the outermost request to the current one."""

    elements: tuple[PathElement, ...] = ()

    def __len__(self) -> int:
        return len(self.elements)

    def __iter__(self) -> Iterator[PathElement]:
        return iter(self.elements)

    def __getitem__(self, index: int) -> PathElement:
        return self.elements[index]

    def __str__(self) -> str:
        return "[" + ", ".join(str(element) for element in self.elements) + "]"

    @property
    def types(self) -> tuple[Any, ...]:
        return tuple(element.type for element in self.elements)

    def append(self, element: PathElement) -> DependencyPath:
        return DependencyPath((*self.elements, element))


@dataclass(slots=True, eq=False)
class GroupCollector:
    """Record group members whose resolution starts while the collector is open."""

    members: frozenset[Any]
    """Keys of the members being collected."""
    discovered: list[Any] = field(default_factory=list)

    def record(self, member_key: Any) -> None:
        if member_key in self.members and member_key not in self.discovered:
            self.discovered.append(member_key)


@dataclass(frozen=True, slots=True)
class _ChainState:
    frames: tuple[ResolutionFrame, ...] = ()
    collectors: tuple[GroupCollector, ...] = ()


_chain: ContextVar[_ChainState] = ContextVar("ctxwire_reference_chain", default=_ChainState())


class ReferenceChainTracker:
    """Maintain the stack of in-progress resolutions of the current thread.

    The stack is held in a ``ContextVar`` so every thread (and every
    ``contextvars`` context) sees its own chain.
    """

    def path(self) -> DependencyPath:
        """Return a snapshot of the current chain."""
        return DependencyPath(
            tuple(
                PathElement(api=frame.api, type=frame.bound_type, context=frame.context)
                for frame in _chain.get().frames
            ),
        )

    def path_with(self, frame: ResolutionFrame) -> DependencyPath:
        """Return the current chain extended with a frame that is not pushed yet."""
        return self.path().append(
            PathElement(api=frame.api, type=frame.bound_type, context=frame.context),
        )

    def find_active(self, identity: tuple[Any, ...]) -> ResolutionFrame | None:
        """Return the in-progress frame with ``identity``, if any."""
        for frame in reversed(_chain.get().frames):
            if frame.identity == identity and frame.in_progress:
                return frame
        return None

    @contextmanager
    def push(self, frame: ResolutionFrame) -> Iterator[ResolutionFrame]:
        """Make ``frame`` the innermost frame for the duration of the block.

        The frame becomes ``ACTIVE`` on entry and ``FAILED`` if the block
        raises. Callers mark it ``RESOLVED`` through ``ResolutionFrame.resolve``.
        """
        state = _chain.get()
        token = _chain.set(_ChainState(frames=(*state.frames, frame), collectors=state.collectors))
        frame.state = FrameState.ACTIVE
        try:
            yield frame
        except BaseException as error:
            frame.state = FrameState.FAILED
            frame.error = error
            raise
        finally:
            _chain.reset(token)

    def constructing(self, member_key: Any) -> None:
        """Report that the component keyed ``member_key`` is about to be constructed.

        Classes are keyed by themselves, factory products by ``(factory type, api)``.
        """
        for collector in _chain.get().collectors:
            collector.record(member_key)

    @contextmanager
    def collect(self, members: frozenset[Any]) -> Iterator[GroupCollector]:
        """Open a collector recording member resolutions started inside the block."""
        collector = GroupCollector(members=members)
        state = _chain.get()
        token = _chain.set(
            _ChainState(frames=state.frames, collectors=(*state.collectors, collector)),
        )
        try:
            yield collector
        finally:
            _chain.reset(token)


__all__ = [
    "DependencyPath",
    "FrameState",
    "GroupCollector",
    "PathElement",
    "ReferenceChainTracker",
    "ResolutionFrame",
]
