import pytest

from litemodel import get_registry


@pytest.fixture(autouse=True)
def clear_registry():
    """Clear the default model registry before and after each test to ensure test isolation."""
    get_registry().clear()
    yield
    get_registry().clear()


pytest_plugins = [
    'tests.fixtures.mocks',
    'tests.fixtures.models',
    'tests.fixtures.sqlite',
]
