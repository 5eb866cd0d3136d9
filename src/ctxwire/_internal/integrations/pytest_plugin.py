from __future__ import annotations

import weakref
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

import pytest

from ctxwire._internal.container import Container
from ctxwire._internal.injection import InjectionPlan, plan_injection

CONTAINER_KEY = pytest.StashKey[Container]()
"""Stash key of the container a test item resolves its injected parameters from."""

_plans: weakref.WeakKeyDictionary[Callable[..., Any], InjectionPlan] = (
    weakref.WeakKeyDictionary()
)


@pytest.fixture()
def ctxwire_container() -> Container:
    """Provide the container test parameters are resolved from.

    Override this fixture in your test suite and return a container holding
    the bindings your tests inject.

    Examples:
        .. code-block:: python

            pytest_plugins = ["ctxwire.integrations.pytest_plugin"]


            @pytest.fixture()
            def ctxwire_container() -> Container:
                container = Container()
                container.bind(FakeStorage, Storage)
                return container


            def test_upload(storage: Injected[Storage]) -> None: ...

    """
    msg = (
        "The ctxwire pytest plugin requires overriding the 'ctxwire_container' fixture in your "
        "test suite. Define @pytest.fixture() def ctxwire_container() -> Container: ... "
        "and return a configured container."
    )
    raise RuntimeError(msg)


@pytest.fixture(autouse=True)
def _ctxwire_state(request: pytest.FixtureRequest) -> None:
    """Stash the test container on items whose test function injects parameters."""
    if _plan_of(getattr(request.node, "obj", None)) is None:
        return
    request.node.stash[CONTAINER_KEY] = request.getfixturevalue("ctxwire_container")


def pytest_pycollect_makeitem(collector: Any, name: str, obj: object) -> Any | None:
    """Hide ``Injected[...]`` parameters from pytest fixture matching.

    Pytest requests a fixture for every test function parameter. Test
    functions declaring ``Injected[...]`` parameters get a public signature
    without them; the full signature is kept for the call.

    Returns:
        ``None`` so pytest continues with its default collection.

    """
    if not callable(obj) or not collector.istestfunction(obj, name):
        return None
    plan = plan_injection(obj)
    if not plan.injects:
        return None
    _plans[obj] = plan
    obj.__signature__ = plan.public_signature  # type: ignore[attr-defined]
    return None


@pytest.hookimpl(hookwrapper=True, tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> Iterator[None]:
    """Call injecting test functions through ``container.inject``.

    Items without injected parameters, or without a stashed container, run
    unchanged. The collected test function is restored after the call.

    Yields:
        Control back to pytest around the test call.

    """
    original = pyfuncitem.obj
    plan = _plan_of(original)
    container = pyfuncitem.stash.get(CONTAINER_KEY, None)
    if plan is None or container is None:
        yield
        return

    with _full_signature(getattr(original, "__func__", original), plan):
        pyfuncitem.obj = container.inject(original)
    try:
        yield
    finally:
        pyfuncitem.obj = original


def _plan_of(test_function: Any) -> InjectionPlan | None:
    if test_function is None:
        return None
    try:
        return _plans.get(getattr(test_function, "__func__", test_function))
    except TypeError:
        return None


@contextmanager
def _full_signature(function: Any, plan: InjectionPlan) -> Iterator[None]:
    function.__signature__ = plan.signature
    try:
        yield
    finally:
        function.__signature__ = plan.public_signature


__all__ = [
    "CONTAINER_KEY",
    "ctxwire_container",
    "pytest_pycollect_makeitem",
    "pytest_pyfunc_call",
]
