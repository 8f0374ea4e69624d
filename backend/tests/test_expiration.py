"""Tests for the expiration sweeper."""
from datetime import timedelta

import pytest

from app.errors import AlreadyResolved
from app.models.song_request import SongRequest, RequestStatus
from app.payments.base import ProviderUnavailable
from app.services import expiration_service, request_service
from app.services.expiration_service import ExpirationSweeper
from app.timeutils import utcnow
from tests.conftest import accept_test_request, create_test_dj, submit_test_request


def _age_request(db, request_id: str, minutes: int) -> None:
    db.query(SongRequest).filter(SongRequest.request_id == request_id).update(
        {"created_at": utcnow() - timedelta(minutes=minutes)}
    )
    db.commit()


def _request(db, request_id: str) -> SongRequest:
    db.expire_all()
    return db.query(SongRequest).filter(SongRequest.request_id == request_id).one()


class TestSweepOnce:
    def test_expires_stale_and_voids_hold(self, client, db, payments):
        dj = create_test_dj(client)
        stale = submit_test_request(client, dj["event_code"])
        fresh = submit_test_request(client, dj["event_code"])
        _age_request(db, stale["request_id"], minutes=181)

        report = expiration_service.sweep_once(db)

        assert report.expired == [stale["request_id"]]
        assert _request(db, stale["request_id"]).status == RequestStatus.expired
        assert _request(db, stale["request_id"]).resolved_at is not None
        assert payments.holds[stale["payment_hold_ref"]] == "voided"
        assert _request(db, fresh["request_id"]).status == RequestStatus.pending
        assert payments.holds[fresh["payment_hold_ref"]] == "held"

    def test_request_just_inside_deadline_survives(self, client, db):
        dj = create_test_dj(client)
        request = submit_test_request(client, dj["event_code"])
        _age_request(db, request["request_id"], minutes=179)

        report = expiration_service.sweep_once(db)
        assert report.expired == []
        assert _request(db, request["request_id"]).status == RequestStatus.pending

    def test_provider_failure_is_isolated(self, client, db, payments):
        dj = create_test_dj(client)
        first = submit_test_request(client, dj["event_code"])
        second = submit_test_request(client, dj["event_code"])
        _age_request(db, first["request_id"], minutes=200)
        _age_request(db, second["request_id"], minutes=190)
        payments.fail_next["void"] = ProviderUnavailable("gateway down")

        report = expiration_service.sweep_once(db)

        # Oldest first: the first void fails, the second goes through
        assert report.failed == [first["request_id"]]
        assert report.expired == [second["request_id"]]
        assert _request(db, first["request_id"]).status == RequestStatus.pending
        assert _request(db, second["request_id"]).status == RequestStatus.expired

        # Retried on the next tick
        report = expiration_service.sweep_once(db)
        assert report.expired == [first["request_id"]]
        assert _request(db, first["request_id"]).status == RequestStatus.expired

    def test_accepted_requests_are_never_swept(self, client, db, payments):
        dj = create_test_dj(client)
        request = submit_test_request(client, dj["event_code"])
        accept_test_request(client, dj["dj_id"], request["request_id"])
        _age_request(db, request["request_id"], minutes=500)

        report = expiration_service.sweep_once(db)
        assert report.expired == []
        assert payments.count("void", request["payment_hold_ref"]) == 0

    def test_accept_after_sweep_fails(self, client, db):
        dj = create_test_dj(client)
        request = submit_test_request(client, dj["event_code"])
        _age_request(db, request["request_id"], minutes=181)
        expiration_service.sweep_once(db)

        resp = client.post(f"/api/requests/{request['request_id']}/accept?dj_id={dj['dj_id']}")
        assert resp.status_code in (400, 409)
        assert _request(db, request["request_id"]).status == RequestStatus.expired


class TestResolutionRace:
    def test_resolve_loses_to_concurrent_accept(self, client, db, session_factory, payments):
        dj = create_test_dj(client)
        request = submit_test_request(client, dj["event_code"])
        stale_view = _request(db, request["request_id"])

        # Another writer accepts while this session still sees PENDING
        item = accept_test_request(client, dj["dj_id"], request["request_id"])

        with pytest.raises(AlreadyResolved):
            request_service.release_hold_and_resolve(db, stale_view, RequestStatus.expired)

        # The accepted song keeps a live hold and can still be charged
        assert payments.count("void", request["payment_hold_ref"]) == 0
        assert payments.holds[request["payment_hold_ref"]] == "held"
        resp = client.post(f"/api/queue/{item['item_id']}/played?dj_id={dj['dj_id']}")
        assert resp.status_code == 200

        check = session_factory()
        try:
            stored = check.query(SongRequest).filter(SongRequest.request_id == request["request_id"]).one()
            assert stored.status == RequestStatus.accepted
        finally:
            check.close()

    def test_accept_loses_once_request_is_sweepable(self, client, db, monkeypatch, payments):
        dj = create_test_dj(client)
        request = submit_test_request(client, dj["event_code"])
        _age_request(db, request["request_id"], minutes=181)
        # Simulate the deadline passing between the expiry check and the status flip
        monkeypatch.setattr(request_service, "is_expired", lambda created_at, now=None: False)

        resp = client.post(f"/api/requests/{request['request_id']}/accept?dj_id={dj['dj_id']}")
        assert resp.status_code == 409
        assert _request(db, request["request_id"]).status == RequestStatus.pending

        report = expiration_service.sweep_once(db)
        assert report.expired == [request["request_id"]]
        assert payments.holds[request["payment_hold_ref"]] == "voided"


class TestExpirationSweeper:
    def test_run_once_uses_its_own_session(self, client, db, session_factory):
        dj = create_test_dj(client)
        request = submit_test_request(client, dj["event_code"])
        _age_request(db, request["request_id"], minutes=181)

        sweeper = ExpirationSweeper(interval_seconds=60, session_factory=session_factory)
        report = sweeper.run_once()

        assert report.expired == [request["request_id"]]
        assert _request(db, request["request_id"]).status == RequestStatus.expired

    def test_start_and_stop(self, session_factory):
        sweeper = ExpirationSweeper(interval_seconds=0.05, session_factory=session_factory)
        sweeper.start()
        assert sweeper.running
        sweeper.stop()
        assert not sweeper.running


class TestHealth:
    def test_health_reports_sweeper(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
