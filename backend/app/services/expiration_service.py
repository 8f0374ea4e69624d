"""Expiration sweeper — no hold stays on a PENDING request past the deadline.

A daemon thread calls ``sweep_once`` every ``EXPIRATION_SWEEP_INTERVAL_SECONDS``.
Each stale PENDING request goes through the same release-then-transition
routine as a manual rejection, targeting EXPIRED. Requests are isolated from
each other: a provider failure leaves that request PENDING so the next tick
picks it up again, and a lost race against a concurrent accept/reject is a
benign no-op.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.database import SessionLocal
from app.errors import AlreadyResolved, ProviderFailure
from app.models.song_request import SongRequest, RequestStatus
from app.services import request_service
from app.timeutils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    expired: list[str] = field(default_factory=list)
    already_resolved: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def find_stale_requests(db: Session, now: Optional[datetime] = None) -> list[SongRequest]:
    cutoff = (now or utcnow()) - request_service.expiration_delta()
    return (
        db.query(SongRequest)
        .filter(SongRequest.status == RequestStatus.pending, SongRequest.created_at < cutoff)
        .order_by(SongRequest.created_at)
        .all()
    )


def sweep_once(db: Session, now: Optional[datetime] = None) -> SweepReport:
    """Expire every PENDING request older than the deadline, one at a time."""
    report = SweepReport()
    stale = find_stale_requests(db, now)
    if stale:
        logger.info("Found %d expired requests", len(stale))

    for request in stale:
        request_id = request.request_id
        try:
            request_service.release_hold_and_resolve(db, request, RequestStatus.expired)
            report.expired.append(request_id)
        except AlreadyResolved:
            db.rollback()
            logger.debug("Request %s was resolved concurrently; skipping", request_id)
            report.already_resolved.append(request_id)
        except ProviderFailure as exc:
            db.rollback()
            logger.warning("Could not expire request %s, will retry next tick: %s", request_id, exc.detail)
            report.failed.append(request_id)
        except Exception:
            db.rollback()
            logger.exception("Unexpected error expiring request %s", request_id)
            report.failed.append(request_id)
    return report


class ExpirationSweeper:
    """Runs ``sweep_once`` on a fixed interval for the lifetime of the process."""

    def __init__(
        self,
        interval_seconds: float = settings.EXPIRATION_SWEEP_INTERVAL_SECONDS,
        session_factory: Callable[[], Session] = SessionLocal,
    ):
        self.interval_seconds = interval_seconds
        self.session_factory = session_factory
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> SweepReport:
        db = self.session_factory()
        try:
            return sweep_once(db)
        finally:
            db.close()

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Error in expiration sweeper")
            self._stop.wait(self.interval_seconds)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="expiration-sweeper", daemon=True)
        self._thread.start()
        logger.info("Expiration sweeper started - checking every %ss", self.interval_seconds)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Expiration sweeper stopped")

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())
