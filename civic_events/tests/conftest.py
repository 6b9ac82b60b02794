import os
from datetime import datetime, timezone
from decimal import Decimal

import pytest

# Ensure JWT_SECRET and DATABASE_URL are set before the services are imported
os.environ.setdefault("JWT_SECRET", "test_secret")
os.environ.setdefault("DATABASE_URL", "postgresql://localhost/civic_events_test")

from civic_events.auth_service.utils import create_token  # noqa: E402
from civic_events.gateway.server import create_app  # noqa: E402

ROUTE_MODULES = (
    "civic_events.auth_service.routes",
    "civic_events.categories_service.routes",
    "civic_events.events_service.routes",
)


@pytest.fixture
def app():
    app = create_app()
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def mock_db(mocker):
    """
    Mocks the database connection and cursor in every service module.
    """
    mock_conn = mocker.MagicMock()
    mock_cursor = mocker.MagicMock()

    # Setup the context manager for connection
    mock_conn.__enter__.return_value = mock_conn
    mock_conn.__exit__.return_value = None

    # Setup the context manager for cursor
    mock_cursor.__enter__.return_value = mock_cursor
    mock_cursor.__exit__.return_value = None

    # Connect cursor to connection
    mock_conn.cursor.return_value = mock_cursor

    for module in ROUTE_MODULES:
        mocker.patch(f"{module}.get_db", return_value=mock_conn)

    return mock_conn, mock_cursor


@pytest.fixture
def auth_header():
    """Build an Authorization header carrying a real token."""

    def _auth_header(user_id=1, role="USER", email=None):
        token = create_token(user_id, email or f"user{user_id}@example.com", role)
        return {"Authorization": f"Bearer {token}"}

    return _auth_header


@pytest.fixture
def event_row():
    """Build a row as returned by the event SELECT."""

    def _event_row(**overrides):
        row = {
            "id": 1,
            "title": "Town Hall Concert",
            "description": "Brass band in the square",
            "location": "Main Square",
            "image_url": None,
            "start_at": datetime(2025, 6, 1, 18, 0, tzinfo=timezone.utc),
            "end_at": datetime(2025, 6, 1, 20, 0, tzinfo=timezone.utc),
            "published": True,
            "blocked": False,
            "category_id": 2,
            "created_by_id": 1,
            "created_at": datetime(2025, 5, 1, 9, 0, tzinfo=timezone.utc),
            "updated_at": datetime(2025, 5, 1, 9, 0, tzinfo=timezone.utc),
            "category_name": "Music",
            "creator_name": "Owner",
            "creator_email": "user1@example.com",
            "average_rating": Decimal("4.0"),
            "ratings_count": 2,
        }
        row.update(overrides)
        return row

    return _event_row


@pytest.fixture
def executed_sql():
    """All SQL strings passed to cursor.execute, in call order."""

    def _executed_sql(mock_cursor):
        return [c.args[0] for c in mock_cursor.execute.call_args_list]

    return _executed_sql
