"""Pytest fixtures — SQLite database and an in-memory payment backend for fast, isolated tests."""
import json
import os
import threading
import uuid

# Point the app at the test database and keep the background sweeper off
# before any app module reads its settings.
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["ENABLE_EXPIRATION_SWEEPER"] = "false"

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from app.database import Base, get_db
from app.main import app
from app.payments import registry
from app.payments.base import (
    Authorization,
    CaptureResult,
    HoldAlreadyCaptured,
    HoldAlreadyVoided,
    HoldNotFound,
    PaymentBackend,
    VoidResult,
    WebhookEvent,
    to_minor_units,
)

# Import all models so they register with Base.metadata
from app.models.dj import DJ                         # noqa: F401
from app.models.song_request import SongRequest      # noqa: F401
from app.models.queue_item import QueueItem          # noqa: F401
from app.models.event_summary import EventSummary    # noqa: F401

SQLITE_URL = "sqlite:///./test.db"


class FakePaymentBackend(PaymentBackend):
    """In-memory hold ledger: each hold is exactly one of held / captured / voided.

    ``fail_next[op] = exc`` makes the next ``op`` call raise ``exc`` before
    touching the ledger, simulating a provider outage.
    """

    name = "fake"

    def __init__(self):
        self.holds: dict[str, str] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_next: dict[str, Exception] = {}
        self._lock = threading.Lock()

    def _maybe_fail(self, op: str) -> None:
        exc = self.fail_next.pop(op, None)
        if exc is not None:
            raise exc

    def authorize(self, amount, currency):
        with self._lock:
            self._maybe_fail("authorize")
            to_minor_units(amount)
            hold_ref = f"hold_{uuid.uuid4().hex[:12]}"
            self.holds[hold_ref] = "held"
            self.calls.append(("authorize", hold_ref))
            return Authorization(hold_ref=hold_ref, client_secret=f"{hold_ref}_secret")

    def capture(self, hold_ref):
        with self._lock:
            self._maybe_fail("capture")
            self.calls.append(("capture", hold_ref))
            state = self.holds.get(hold_ref)
            if state is None:
                raise HoldNotFound(f"{hold_ref} not found", hold_ref)
            if state == "voided":
                raise HoldAlreadyVoided(f"{hold_ref} voided", hold_ref)
            if state == "captured":
                return CaptureResult(hold_ref=hold_ref, provider_ref=hold_ref, already_captured=True)
            self.holds[hold_ref] = "captured"
            return CaptureResult(hold_ref=hold_ref, provider_ref=hold_ref)

    def void(self, hold_ref):
        with self._lock:
            self._maybe_fail("void")
            self.calls.append(("void", hold_ref))
            state = self.holds.get(hold_ref)
            if state is None:
                raise HoldNotFound(f"{hold_ref} not found", hold_ref)
            if state == "captured":
                raise HoldAlreadyCaptured(f"{hold_ref} captured", hold_ref)
            if state == "voided":
                return VoidResult(hold_ref=hold_ref, already_voided=True)
            self.holds[hold_ref] = "voided"
            return VoidResult(hold_ref=hold_ref)

    def parse_webhook(self, payload, headers):
        event = json.loads(payload)
        return WebhookEvent(provider=self.name, event_type=event["type"], resource_id=event.get("id"))

    def count(self, op: str, hold_ref: str) -> int:
        return self.calls.count((op, hold_ref))


@pytest.fixture(autouse=True)
def payments():
    """Route every payment method to a fresh in-memory backend."""
    fake = FakePaymentBackend()
    registry.set_backend_override(fake)
    yield fake
    registry.set_backend_override(None)


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})

    # Enable WAL mode for better concurrency
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory):
    """Yield a database session for direct service calls and assertions."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(session_factory):
    """FastAPI TestClient with the database dependency overridden to use SQLite."""

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers: create DJs and requests via the API, return the JSON response dict
# ---------------------------------------------------------------------------
def create_test_dj(client: TestClient, name: str = "DJ Test", min_donation: str = "5.00") -> dict:
    """Helper — POST /api/djs and return response JSON."""
    resp = client.post("/api/djs/", json={
        "email": f"{uuid.uuid4().hex[:10]}@djmail.com",
        "name": name,
        "min_donation": min_donation,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


def submit_test_request(client: TestClient, event_code: str, amount: str = "10.00",
                        method: str = "CARD", title: str = "One More Time", **extra) -> dict:
    """Helper — POST /api/requests and return response JSON."""
    resp = client.post("/api/requests/", json={
        "event_code": event_code,
        "song_title": title,
        "artist_name": "Daft Punk",
        "requester_name": "Alice",
        "donation_amount": amount,
        "payment_method": method,
        **extra,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


def accept_test_request(client: TestClient, dj_id: str, request_id: str) -> dict:
    resp = client.post(f"/api/requests/{request_id}/accept?dj_id={dj_id}")
    assert resp.status_code == 200, resp.text
    return resp.json()


def queued_song(client: TestClient, dj: dict, amount: str = "10.00", title: str = "One More Time") -> dict:
    """Submit and accept a request; return the queue item JSON."""
    request = submit_test_request(client, dj["event_code"], amount=amount, title=title)
    return accept_test_request(client, dj["dj_id"], request["request_id"])
