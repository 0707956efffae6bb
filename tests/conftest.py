import pytest

from jsonbind import ObjectMapper


@pytest.fixture
def mapper():
    """A mapper with an empty registry, isolated from the module default."""
    return ObjectMapper()
