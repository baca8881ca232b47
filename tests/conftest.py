import pytest

from app import create_app
from extensions import derivative_cache


@pytest.fixture
def app():
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test',
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'DERIVATIVE_CACHE_SIZE': 16,
    })
    yield app
    derivative_cache.clear()


@pytest.fixture
def client(app):
    return app.test_client()
