"""Shared pytest fixtures for interwire tests."""

import pytest

from interwire.container import Container
from interwire.providers import Lifetime


@pytest.fixture()
def container() -> Container:
    """Default container with implicit registration of concrete types."""
    return Container()


@pytest.fixture()
def strict_container() -> Container:
    """Container with autoregister_concrete_types=False."""
    return Container(autoregister_concrete_types=False)


@pytest.fixture()
def container_singleton() -> Container:
    """Container with lifetime singleton as default."""
    return Container(Lifetime.SINGLETON)
