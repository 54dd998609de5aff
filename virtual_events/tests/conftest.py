import os
from datetime import datetime, timedelta, timezone

import pytest

from virtual_events.gateway.server import create_app
from virtual_events.tests.fakes.fake_store import FakeStore

# Ensure JWT_SECRET is set for tests
os.environ["JWT_SECRET"] = "test_secret"


class RecordingNotifier:
    """Collects notifications instead of sending email."""

    def __init__(self):
        self.sent = []
        self.error = None

    def notify_registration(self, user, event):
        if self.error is not None:
            raise self.error
        self.sent.append((user["user_id"], event["event_id"]))


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app(store, notifier):
    app = create_app(
        {"TESTING": True, "JWT_SECRET": "test_secret", "TOKEN_EXPIRATION_MINUTES": 60},
        store=store,
        notifier=notifier,
    )
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def user(store):
    return store.seed_user(name="Test User", username="tester", email="test@example.com")


@pytest.fixture
def auth_headers(app, user):
    from virtual_events.auth_service.utils import create_token

    with app.app_context():
        token = create_token(user["user_id"], user["role"])
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def future():
    def _future(**delta):
        return datetime.now(timezone.utc) + timedelta(**delta)
    return _future


@pytest.fixture
def mock_db(mocker):
    """
    Mocks the Database handle, connection and cursor used by EventStore.
    """
    mock_database = mocker.MagicMock()
    mock_conn = mocker.MagicMock()
    mock_cursor = mocker.MagicMock()

    # db.connection() is a context manager yielding the connection
    mock_database.connection.return_value.__enter__.return_value = mock_conn
    mock_database.connection.return_value.__exit__.return_value = None

    # conn.cursor() is a context manager yielding the cursor
    mock_conn.cursor.return_value.__enter__.return_value = mock_cursor
    mock_conn.cursor.return_value.__exit__.return_value = None

    return mock_database, mock_conn, mock_cursor
