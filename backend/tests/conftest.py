"""Pytest fixtures: file-backed SQLite database for fast, isolated tests."""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from eventhub.auth import Actor, Role
from eventhub.database import Base, get_db
from eventhub.main import app
from eventhub.services.channels import EmailChannel, SMSChannel
from eventhub.services.lifecycle import build_lifecycle, get_fact_bus

# Import all models so they register with Base.metadata
from eventhub.models.user import User                       # noqa: F401
from eventhub.models.facility import Facility, Location     # noqa: F401
from eventhub.models.event import Event                     # noqa: F401
from eventhub.models.event_request import EventRequest, EventRequestResponse  # noqa: F401
from eventhub.models.attendance import EventAttendance      # noqa: F401
from eventhub.models.notification import Notification, NotificationPreference  # noqa: F401
from eventhub.models.audit_log import AuditLog              # noqa: F401

SQLITE_URL = "sqlite:///./test.db"


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False, "timeout": 30})

    # Enable WAL mode for better concurrency
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory):
    """Yield a database session, closed after the test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def email_channel():
    return EmailChannel()


@pytest.fixture(scope="function")
def sms_channel():
    return SMSChannel()


@pytest.fixture(scope="function")
def lifecycle(session_factory, email_channel, sms_channel):
    """Inline fact delivery so notifications exist as soon as a call returns."""
    lc = build_lifecycle(
        session_factory, mode="inline", email_channel=email_channel, sms_channel=sms_channel, send_timeout=2.0
    )
    yield lc
    lc.shutdown()


@pytest.fixture(scope="function")
def bus(lifecycle):
    return lifecycle.bus


@pytest.fixture(scope="function")
def client(session_factory, lifecycle):
    """FastAPI TestClient with the database and fact bus overridden for tests."""

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_fact_bus] = lambda: lifecycle.bus
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def headers(user: dict) -> dict:
    """Identity headers the gateway would forward for ``user``."""
    return {"X-User-Id": user["user_id"], "X-User-Role": user["role"]}


def actor_for(user: dict) -> Actor:
    return Actor(user_id=user["user_id"], role=Role(user["role"]))


def create_test_user(client: TestClient, name: str = "Test User", role: str = "VOLUNTEER",
                     email: str = None, phone: str = None) -> dict:
    """Helper: POST /api/users and return response JSON."""
    resp = client.post("/api/users/", json={
        "display_name": name,
        "role": role,
        "email": email,
        "phone": phone,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


def create_test_facility(client: TestClient, admin: dict, contact: dict, name: str = "Maple Grove") -> dict:
    """Helper: POST /api/facilities as ``admin`` and return response JSON."""
    resp = client.post("/api/facilities/", json={
        "name": name,
        "address": "12 Elm Street",
        "contact_user_id": contact["user_id"],
    }, headers=headers(admin))
    assert resp.status_code == 201, resp.text
    return resp.json()


def create_test_event(client: TestClient, creator: dict, title: str = "Music Hour",
                      start_offset_hours: float = 24, duration_hours: float = 1,
                      max_attendees: int = 10) -> dict:
    """Helper: POST /api/events as ``creator`` and return response JSON."""
    start = datetime.now(timezone.utc) + timedelta(hours=start_offset_hours)
    end = start + timedelta(hours=duration_hours)
    resp = client.post("/api/events/", json={
        "title": title,
        "start_time_utc": start.isoformat(),
        "end_time_utc": end.isoformat(),
        "max_attendees": max_attendees,
        "location_name": "Community Room",
    }, headers=headers(creator))
    assert resp.status_code == 201, resp.text
    return resp.json()


def inbox(client: TestClient, user: dict) -> list:
    resp = client.get("/api/notifications/", headers=headers(user))
    assert resp.status_code == 200, resp.text
    return resp.json()
