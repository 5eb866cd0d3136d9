from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Annotated, Any

import pytest

from ctxwire import (
    CompositeObserver,
    Container,
    CtxWireResolutionError,
    DependencyPath,
    InstanceReference,
    Qualifier,
    component,
)


@dataclass(frozen=True)
class Label(Qualifier):
    value: str


class Repository:
    pass


@component(tags=[Label("service")])
class Service:
    def __init__(self, repository: Annotated[Repository, Label("primary")]) -> None:
        self.repository = repository


class Ping(ABC):
    @abstractmethod
    def ping(self) -> str: ...


class PingImpl(Ping):
    def __init__(self, pong: "PongImpl") -> None:
        self.pong = pong

    def ping(self) -> str:
        return "ping"


class PongImpl:
    def __init__(self, ping: Ping) -> None:
        self.ping = ping


class RecordingObserver:
    def __init__(self) -> None:
        self.events: list[tuple[Any, ...]] = []
        self.references: list[InstanceReference] = []
        self.pending_during_callback: list[bool] = []

    def descending(
        self,
        declaring: type,
        dependency: Any,
        type_tags: tuple[Qualifier, ...],
        reference_tags: tuple[Qualifier, ...],
    ) -> None:
        self.events.append(("descending", declaring, dependency, type_tags, reference_tags))

    def ascending(self, declaring: type, dependency: Any) -> None:
        self.events.append(("ascending", declaring, dependency))

    def circular(self, path: DependencyPath) -> None:
        self.events.append(("circular", path.types))

    def resolved(self, path: DependencyPath, component_type: type) -> None:
        self.events.append(("resolved", path.types, component_type))

    def instantiated(self, path: DependencyPath, reference: InstanceReference) -> None:
        self.events.append(("instantiated", path.types, reference.type))
        self.references.append(reference)
        self.pending_during_callback.append(reference.instance is None and not reference.available)

    def named(self, name: str) -> list[tuple[Any, ...]]:
        return [event for event in self.events if event[0] == name]


class ResolvedOnly:
    def __init__(self) -> None:
        self.types: list[type] = []

    def resolved(self, path: DependencyPath, component_type: type) -> None:
        self.types.append(component_type)


class FailingObserver:
    def resolved(self, path: DependencyPath, component_type: type) -> None:
        msg = "observer failed"
        raise RuntimeError(msg)


@pytest.fixture()
def observer() -> RecordingObserver:
    return RecordingObserver()


def test_events_follow_resolution_order(container: Container, observer: RecordingObserver) -> None:
    container.bind(Repository)
    container.bind(Service)

    container.observed(observer).resolve(Service)

    assert observer.events == [
        ("resolved", (Service,), Service),
        ("descending", Service, Repository, (Label("service"),), (Label("primary"),)),
        ("resolved", (Service, Repository), Repository),
        ("instantiated", (Service, Repository), Repository),
        ("ascending", Service, Repository),
        ("instantiated", (Service,), Service),
    ]


def test_descending_and_ascending_are_balanced_on_failure(
    container: Container,
    observer: RecordingObserver,
) -> None:
    container.bind(Service)

    with pytest.raises(CtxWireResolutionError, match="No binding found"):
        container.observed(observer).resolve(Service)

    assert len(observer.named("descending")) == len(observer.named("ascending")) == 1


def test_resolved_is_reported_once_per_path(container: Container, observer: RecordingObserver) -> None:
    container.bind(Repository)
    container.bind(Service)
    view = container.observed(observer)

    view.resolve(Service)
    view.resolve(Service)

    assert observer.named("resolved") == [
        ("resolved", (Service,), Service),
        ("resolved", (Service, Repository), Repository),
    ]
    assert len(observer.named("instantiated")) == 2


def test_instance_reference_is_filled_after_callbacks(
    container: Container,
    observer: RecordingObserver,
) -> None:
    container.bind(Repository)

    repository = container.observed(observer).resolve(Repository)

    assert observer.pending_during_callback == [True]
    assert observer.references[0].instance is repository
    assert observer.references[0].available


def test_circular_placeholder_is_reported(container: Container, observer: RecordingObserver) -> None:
    container.bind(PingImpl, Ping)
    container.bind(PongImpl)

    ping = container.observed(observer).resolve(Ping)

    assert ping.pong.ping.ping() == "ping"
    assert observer.named("circular") == [("circular", (PingImpl, PongImpl, PingImpl))]


def test_traverse_reports_without_instantiating(container: Container, observer: RecordingObserver) -> None:
    container.bind(Repository)
    container.bind(Service)

    container.observed(observer).traverse(Service)

    assert observer.named("instantiated") == []
    assert observer.named("resolved") == [
        ("resolved", (Service,), Service),
        ("resolved", (Service, Repository), Repository),
    ]
    assert len(observer.named("descending")) == len(observer.named("ascending")) == 1


def test_traverse_reports_circular_placeholder(container: Container, observer: RecordingObserver) -> None:
    container.bind(PingImpl, Ping)
    container.bind(PongImpl)

    container.observed(observer).traverse(Ping)

    assert observer.named("circular") == [("circular", (PingImpl, PongImpl, PingImpl))]
    assert observer.named("instantiated") == []


def test_composite_observer_skips_missing_methods(container: Container, observer: RecordingObserver) -> None:
    partial = ResolvedOnly()
    container.bind(Repository)

    container.observed(CompositeObserver([partial, observer])).resolve(Repository)

    assert partial.types == [Repository]
    assert observer.named("resolved") == [("resolved", (Repository,), Repository)]


def test_children_of_observed_view_report_to_observer(
    container: Container,
    observer: RecordingObserver,
) -> None:
    container.bind(Repository)
    child = container.observed(observer).make_child()

    child.resolve(Repository)

    assert observer.named("resolved") == [("resolved", (Repository,), Repository)]


def test_unobserved_container_does_not_report(container: Container, observer: RecordingObserver) -> None:
    container.bind(Repository)
    container.observed(observer)

    container.resolve(Repository)

    assert observer.events == []


def test_observer_exception_propagates(container: Container) -> None:
    container.bind(Repository)

    with pytest.raises(RuntimeError, match="observer failed"):
        container.observed(FailingObserver()).resolve(Repository)
