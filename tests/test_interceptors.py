from dataclasses import dataclass
from typing import Annotated, Any

import pytest

from ctxwire import (
    ComponentContext,
    ComponentInterceptor,
    Container,
    CtxWireInstantiationError,
    CtxWireResolutionError,
    Dependency,
    Qualifier,
    component,
)


@dataclass(frozen=True)
class Audited(Qualifier):
    label: str


@dataclass(frozen=True)
class Traced(Qualifier):
    pass


class Greeter:
    def greet(self) -> str:
        return "hello"


class Shouting(Greeter):
    def __init__(self, inner: Greeter) -> None:
        self.inner = inner

    def greet(self) -> str:
        return self.inner.greet().upper()


class Consumer:
    def __init__(self, greeter: Greeter) -> None:
        self.greeter = greeter


class AuditedConsumer:
    def __init__(self, greeter: Annotated[Greeter, Audited("billing")]) -> None:
        self.greeter = greeter


class ShoutingInterceptor(ComponentInterceptor):
    def intercept(self, api: Any, context: ComponentContext, dependency: Dependency) -> Dependency | None:
        if api is not Greeter:
            return dependency
        return lambda: Shouting(dependency())


@component(context=[Audited])
class AuditInterceptor(ComponentInterceptor):
    seen: list[Audited] = []

    def intercept(self, api: Any, context: ComponentContext, dependency: Dependency) -> Dependency | None:
        self.seen.append(context.get(Audited))
        return lambda: Shouting(dependency())


def test_interceptor_replaces_dependency(container: Container) -> None:
    container.bind(Greeter)
    container.bind(Consumer)
    container.bind(ShoutingInterceptor)

    consumer = container.resolve(Consumer)

    assert isinstance(consumer.greeter, Shouting)
    assert consumer.greeter.greet() == "HELLO"
    assert consumer.greeter.inner is container.resolve(Greeter)


def test_requested_component_is_not_intercepted(container: Container) -> None:
    container.bind(Greeter)
    container.bind(ShoutingInterceptor)

    assert type(container.resolve(Greeter)) is Greeter


def test_interceptor_with_context_only_runs_for_matching_references(container: Container) -> None:
    AuditInterceptor.seen = []
    container.bind(Greeter)
    container.bind(Consumer)
    container.bind(AuditedConsumer)
    container.bind(AuditInterceptor)

    plain = container.resolve(Consumer)
    audited = container.resolve(AuditedConsumer)

    assert type(plain.greeter) is Greeter
    assert isinstance(audited.greeter, Shouting)
    assert AuditInterceptor.seen == [Audited("billing")]


@dataclass
class Trail:
    names: tuple[str, ...] = ()


def _appending(name: str, dependency: Dependency) -> Dependency:
    return lambda: Trail((*dependency().names, name))


@component(context=[Audited])
class AuditTrail(ComponentInterceptor):
    def intercept(self, api: Any, context: ComponentContext, dependency: Dependency) -> Dependency | None:
        return _appending("audit", dependency)


@component(context=[Traced])
class TraceTrail(ComponentInterceptor):
    def intercept(self, api: Any, context: ComponentContext, dependency: Dependency) -> Dependency | None:
        return _appending("trace", dependency)


class PlainTrail(ComponentInterceptor):
    def intercept(self, api: Any, context: ComponentContext, dependency: Dependency) -> Dependency | None:
        return _appending("plain", dependency)


class TrailConsumer:
    def __init__(self, trail: Annotated[Trail, Audited("x"), Traced()]) -> None:
        self.trail = trail


def test_interceptors_keyed_on_latest_qualifier_wrap_innermost(container: Container) -> None:
    container.bind_instance(Trail())
    container.bind(TrailConsumer)
    container.bind(PlainTrail)
    container.bind(AuditTrail)
    container.bind(TraceTrail)

    consumer = container.resolve(TrailConsumer)

    assert consumer.trail.names == ("trace", "audit", "plain")


class Refusing(ComponentInterceptor):
    def intercept(self, api: Any, context: ComponentContext, dependency: Dependency) -> Dependency | None:
        return None


class OptionalConsumer:
    def __init__(self, greeter: Greeter | None) -> None:
        self.greeter = greeter


def test_refused_mandatory_dependency_raises(container: Container) -> None:
    container.bind(Greeter)
    container.bind(Consumer)
    container.bind(Refusing)

    with pytest.raises(CtxWireResolutionError, match="refused"):
        container.resolve(Consumer)


def test_refused_optional_dependency_is_none(container: Container) -> None:
    container.bind(Greeter)
    container.bind(OptionalConsumer)
    container.bind(Refusing)

    assert container.resolve(OptionalConsumer).greeter is None


class Eager(ComponentInterceptor):
    def intercept(self, api: Any, context: ComponentContext, dependency: Dependency) -> Dependency | None:
        dependency()
        return dependency


def test_dependency_access_during_interception_raises(container: Container) -> None:
    container.bind(Greeter)
    container.bind(Consumer)
    container.bind(Eager)

    with pytest.raises(CtxWireResolutionError, match="accessed during interception"):
        container.resolve(Consumer)


class Failing(ComponentInterceptor):
    def intercept(self, api: Any, context: ComponentContext, dependency: Dependency) -> Dependency | None:
        msg = "interceptor failed"
        raise ValueError(msg)


def test_interceptor_exception_is_wrapped(container: Container) -> None:
    container.bind(Greeter)
    container.bind(Consumer)
    container.bind(Failing)

    with pytest.raises(CtxWireInstantiationError, match="interceptor failed") as exc_info:
        container.resolve(Consumer)

    assert isinstance(exc_info.value.__cause__, ValueError)


class GreeterAwareInterceptor(ComponentInterceptor):
    def __init__(self, greeter: Greeter) -> None:
        self.greeter = greeter

    def intercept(self, api: Any, context: ComponentContext, dependency: Dependency) -> Dependency | None:
        if api is not Greeter:
            return dependency
        return lambda: Shouting(dependency())


def test_interceptor_dependencies_are_not_intercepted(container: Container) -> None:
    container.bind(Greeter)
    container.bind(Consumer)
    container.bind(GreeterAwareInterceptor)

    interceptor = container.resolve(GreeterAwareInterceptor)
    consumer = container.resolve(Consumer)

    assert type(interceptor.greeter) is Greeter
    assert isinstance(consumer.greeter, Shouting)


def test_interceptors_apply_to_injected_parameters(container: Container) -> None:
    container.bind(Greeter)
    container.bind(ShoutingInterceptor)

    def greet(greeter: Greeter) -> str:
        return greeter.greet()

    assert container.invoke(greet) == "HELLO"


def test_interceptors_visible_from_child_container(container: Container) -> None:
    container.bind(Greeter)
    container.bind(ShoutingInterceptor)
    child = container.make_child()
    child.bind(Consumer)

    assert isinstance(child.resolve(Consumer).greeter, Shouting)
