import os

import pytest


if os.environ.get("RUN_INTEGRATION_TESTS") != "1":
    pytest.skip(
        "Integration tests are disabled. Set RUN_INTEGRATION_TESTS=1 to enable.",
        allow_module_level=True,
    )

os.environ.setdefault("JWT_SECRET", "integration-test-secret")
os.environ.setdefault("ADMIN_CODE", "integration-admin-code")

from civic_events.database.db_connection import get_db  # noqa: E402
from civic_events.database.init_db import apply_schema  # noqa: E402
from civic_events.gateway.server import create_app  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _ensure_schema():
    # Tables are left in place; each test truncates them through `db`
    apply_schema()


@pytest.fixture()
def db():
    """Empty tables before each test; yields a query helper."""
    with get_db() as conn:
        with conn.cursor() as cur:
            cur.execute("TRUNCATE TABLE ratings, events, categories, users RESTART IDENTITY CASCADE;")

    def query(sql, params=None):
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                return [dict(row) for row in cur.fetchall()]

    return query


@pytest.fixture()
def client(db):
    app = create_app()
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture()
def helpers(client):
    def register(email, role=None, admin_code=None):
        payload = {"email": email, "password": "password123", "name": email.split("@")[0]}
        if role:
            payload["role"] = role
            payload["adminCode"] = admin_code or os.environ["ADMIN_CODE"]
        resp = client.post("/api/auth/register", json=payload)
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()["token"]

    def auth_header(token):
        return {"Authorization": f"Bearer {token}"}

    def create_event(token, **fields):
        payload = {"title": "Spring Fair", "startAt": "2025-04-12T10:00:00Z"}
        payload.update(fields)
        resp = client.post("/api/events", json=payload, headers=auth_header(token))
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()

    return {
        "client": client,
        "register": register,
        "auth_header": auth_header,
        "create_event": create_event,
    }
