import inspect

import pytest

from ctxwire import (
    Container,
    CtxWireBindingError,
    CtxWireResolutionError,
    Deferred,
    DeferredReference,
    Injected,
)


class Repository:
    pass


class MemoryRepository(Repository):
    pass


class Report:
    def __init__(self, repository: Repository) -> None:
        self.repository = repository


class Handler:
    repository: Injected[Repository]
    title: str = "handler"


class Scheduler:
    def __init__(self, repository: Deferred[Repository]) -> None:
        self.repository = repository


class Job:
    def run(self, repository: Repository, name: str) -> tuple[str, Repository]:
        return name, repository


def test_invoke_resolves_missing_parameters(container: Container) -> None:
    container.bind(Repository)

    def report(repository: Repository, title: str) -> tuple[Repository, str]:
        return repository, title

    repository, title = container.invoke(report, title="daily")

    assert repository is container.resolve(Repository)
    assert title == "daily"


def test_invoke_keeps_caller_arguments(container: Container) -> None:
    container.bind(Repository)
    explicit = MemoryRepository()

    def report(repository: Repository) -> Repository:
        return repository

    assert container.invoke(report, explicit) is explicit


def test_invoke_uses_defaults_for_unbound_parameters(container: Container) -> None:
    container.bind(Repository)

    def report(repository: Repository, limit: int = 10, *args: str, **kwargs: str) -> int:
        return limit

    assert container.invoke(report) == 10


def test_invoke_bound_method(container: Container) -> None:
    container.bind(Repository)

    name, repository = container.invoke(Job().run, name="nightly")

    assert name == "nightly"
    assert repository is container.resolve(Repository)


def test_invoke_requires_annotations_for_missing_parameters(container: Container) -> None:
    def report(repository) -> None:  # noqa: ANN001
        pass

    with pytest.raises(CtxWireResolutionError, match="Unable to infer dependency"):
        container.invoke(report)


def test_inject_hides_injected_parameters(container: Container) -> None:
    container.bind(Repository)

    @container.inject
    def handle(key: str, repository: Injected[Repository]) -> tuple[str, Repository]:
        return key, repository

    assert list(inspect.signature(handle).parameters) == ["key"]
    assert handle("a") == ("a", container.resolve(Repository))
    assert handle.__name__ == "handle"


def test_inject_accepts_explicit_arguments(container: Container) -> None:
    container.bind(Repository)
    explicit = MemoryRepository()

    @container.inject()
    def handle(repository: Injected[Repository]) -> Repository:
        return repository

    assert handle(repository=explicit) is explicit


def test_inject_resolves_on_every_call(container: Container) -> None:
    container.bind(Repository, stateful=True)

    @container.inject
    def handle(repository: Injected[Repository]) -> Repository:
        return repository

    assert handle() is not handle()


def test_inject_rejects_non_callable(container: Container) -> None:
    with pytest.raises(CtxWireBindingError, match="must be callable"):
        container.inject(42)  # type: ignore[call-overload]


def test_instantiate_builds_unbound_class_without_caching(container: Container) -> None:
    container.bind(Repository)

    first = container.instantiate(Report)
    second = container.instantiate(Report)

    assert first is not second
    assert first.repository is second.repository
    assert container.resolve(Report, optional=True) is None


def test_instantiate_with_extra_bindings(container: Container) -> None:
    report = container.instantiate(Report, lambda registry: registry.bind(MemoryRepository, Repository))

    assert type(report.repository) is MemoryRepository
    assert container.resolve(Repository, optional=True) is None


def test_initialize_fills_unset_fields(container: Container) -> None:
    container.bind(Repository)
    handler = Handler()

    assert container.initialize(handler) is handler
    assert handler.repository is container.resolve(Repository)


def test_initialize_keeps_fields_already_set(container: Container) -> None:
    container.bind(Repository)
    handler = Handler()
    handler.repository = MemoryRepository()

    container.initialize(handler)

    assert type(handler.repository) is MemoryRepository


def test_deferred_dependency_resolves_on_first_access(container: Container) -> None:
    container.bind(Scheduler)

    scheduler = container.resolve(Scheduler)
    container.bind(Repository)

    assert isinstance(scheduler.repository, DeferredReference)
    assert not scheduler.repository.resolved
    assert scheduler.repository.get() is container.resolve(Repository)
    assert scheduler.repository.get() is scheduler.repository.get()
