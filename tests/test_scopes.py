import pytest

from ctxwire import Container, CtxWireResolutionError, ScopeKind
from ctxwire._internal.bindings import Binding, BindingKind
from ctxwire._internal.scope import Scope


class Repository:
    pass


class MemoryRepository(Repository):
    pass


class Service:
    def __init__(self, repository: Repository) -> None:
        self.repository = repository


def test_container_kinds(container: Container) -> None:
    assert container.kind is ScopeKind.ROOT
    assert container.make_child().kind is ScopeKind.CHILD
    assert container.make_domain().kind is ScopeKind.DOMAIN


def test_child_reuses_components_owned_by_parent(container: Container) -> None:
    container.bind(Repository)
    child = container.make_child()

    assert child.resolve(Repository) is container.resolve(Repository)


def test_child_components_are_private_to_child(container: Container) -> None:
    child = container.make_child()
    child.bind(Repository)

    assert child.resolve(Repository) is child.resolve(Repository)
    with pytest.raises(CtxWireResolutionError, match="No binding found"):
        container.resolve(Repository)


def test_parent_component_does_not_see_child_bindings(container: Container) -> None:
    container.bind(Service)
    child = container.make_child()
    child.bind(Repository)

    with pytest.raises(CtxWireResolutionError, match="No binding found for"):
        child.resolve(Service)


def test_make_child_installs_bindings(container: Container) -> None:
    child = container.make_child(lambda registry: registry.bind(Repository))

    assert isinstance(child.resolve(Repository), Repository)
    assert container.resolve(Repository, optional=True) is None


def test_domain_rebuilds_ancestor_components(container: Container) -> None:
    container.bind(Repository)
    domain = container.make_domain()

    in_domain = domain.resolve(Repository)

    assert in_domain is not container.resolve(Repository)
    assert domain.resolve(Repository) is in_domain
    assert domain.make_child().resolve(Repository) is in_domain


def test_domains_do_not_share_components(container: Container) -> None:
    container.bind(Repository)

    assert container.make_domain().resolve(Repository) is not container.make_domain().resolve(Repository)


def test_domain_components_see_domain_bindings(container: Container) -> None:
    container.bind(Repository)
    container.bind(Service)
    domain = container.make_domain()
    domain.bind(MemoryRepository, Repository)

    assert type(domain.resolve(Service).repository) is MemoryRepository
    assert type(container.resolve(Service).repository) is Repository


def test_close_runs_callbacks_in_reverse_order(container: Container) -> None:
    calls: list[str] = []
    container.on_close(lambda: calls.append("first"))
    container.on_close(lambda: calls.append("second"))

    container.close()
    container.close()

    assert calls == ["second", "first"]
    assert container.closed


def test_closed_container_rejects_resolution(container: Container) -> None:
    container.bind(Repository)
    container.close()

    with pytest.raises(CtxWireResolutionError, match="is closed"):
        container.resolve(Repository)


def test_child_is_unusable_after_parent_closes(container: Container) -> None:
    container.bind(Repository)
    child = container.make_child()
    container.close()

    with pytest.raises(CtxWireResolutionError, match="is closed"):
        child.resolve(Repository)


def test_closing_child_keeps_parent_open(container: Container) -> None:
    container.bind(Repository)
    calls: list[str] = []
    with container.make_child() as child:
        child.on_close(lambda: calls.append("child"))
        child.resolve(Repository)

    assert calls == ["child"]
    assert child.closed
    assert not container.closed
    assert isinstance(container.resolve(Repository), Repository)


def test_callback_error_is_raised_after_remaining_callbacks() -> None:
    calls: list[str] = []
    container = Container()

    def failing() -> None:
        msg = "cleanup failed"
        raise RuntimeError(msg)

    container.on_close(lambda: calls.append("first"))
    container.on_close(failing)
    container.on_close(lambda: calls.append("third"))

    with pytest.raises(RuntimeError, match="cleanup failed"):
        container.close()

    assert calls == ["third", "first"]
    assert container.closed


def test_on_close_rejects_closed_container(container: Container) -> None:
    container.close()

    with pytest.raises(CtxWireResolutionError, match="is closed"):
        container.on_close(lambda: None)


def test_registration_only_advances_own_root_generation() -> None:
    first = Scope(name="first")
    second = Scope(name="second")
    child = Scope(kind=ScopeKind.CHILD, parent=first)

    child.register(Binding(api=Service, kind=BindingKind.CLASS, target=Service))

    assert first.generation == 1
    assert second.generation == 0
