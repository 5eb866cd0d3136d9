"""Shared pytest fixtures for ctxwire tests."""

from collections.abc import Iterator

import pytest

from ctxwire.container import Container
from ctxwire.lock_mode import LockMode


@pytest.fixture()
def container() -> Iterator[Container]:
    """Root container closed after the test."""
    with Container(name="test") as root:
        yield root


@pytest.fixture()
def unlocked_container() -> Container:
    """Root container without cache locking."""
    return Container(lock_mode=LockMode.NONE)
