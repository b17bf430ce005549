"""
Pytest configuration and fixtures for the post API.
"""
import pytest
from sqlalchemy.pool import StaticPool

from app import create_app
from models import db
from storage import PostStore

API_KEY = 'test-key'

TEST_CONFIG = {
    'SQLALCHEMY_DATABASE_URI': 'sqlite://',
    # One shared in-memory connection, so every session sees the same tables.
    'SQLALCHEMY_ENGINE_OPTIONS': {
        'poolclass': StaticPool,
        'connect_args': {'check_same_thread': False},
    },
    'API_KEY': API_KEY,
    'TESTING': True,
}


@pytest.fixture
def store():
    return PostStore(db)


@pytest.fixture
def app(store):
    return create_app(TEST_CONFIG, store=store)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth():
    """Headers carrying the configured API key."""
    return {'Authorization': API_KEY}


@pytest.fixture
def row_count(app, store):
    """Counts post rows straight from storage."""
    def count() -> int:
        with app.app_context():
            return store.count()
    return count


@pytest.fixture
def create(client, auth):
    """Creates a post through the API and returns its JSON."""
    def make(title: str = 'A', content: str = 'B') -> dict:
        r = client.post('/v1/post', json={'title': title, 'content': content}, headers=auth)
        assert r.status_code == 200, f"Create failed: {r.get_data(as_text=True)}"
        return r.get_json()['post']
    return make
