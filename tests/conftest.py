import pytest

from tests.factories import FakeEmailStore, FakeRedis


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def email_store():
    return FakeEmailStore()
