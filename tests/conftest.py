import pytest

from factories import FakeRpcGateway


@pytest.fixture
def gateway():
    return FakeRpcGateway()
