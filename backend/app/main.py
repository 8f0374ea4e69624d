"""FastAPI application entry point."""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.config import settings
from app.database import Base, SessionLocal, engine

# Import routers
from app.routers import djs, requests, queue, payments

# Import all models so Base.metadata knows about them
from app.models.dj import DJ                         # noqa: F401
from app.models.song_request import SongRequest      # noqa: F401
from app.models.queue_item import QueueItem          # noqa: F401
from app.models.event_summary import EventSummary    # noqa: F401

from app.services import queue_service
from app.services.expiration_service import ExpirationSweeper

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="DJ Request",
    description="Paid song requests for live DJs — holds on submit, capture on play, release on reject/skip/expiry",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(djs.router, prefix="/api/djs", tags=["DJs"])
app.include_router(requests.router, prefix="/api/requests", tags=["Requests"])
app.include_router(queue.router, prefix="/api/queue", tags=["Queue"])
app.include_router(payments.router, prefix="/api/payments", tags=["Payments"])

sweeper = ExpirationSweeper()


@app.on_event("startup")
def on_startup():
    """Create tables (SQLite dev mode), repair NOW_PLAYING state and start the sweeper."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        demoted = queue_service.reconcile_now_playing(db)
        if demoted:
            logger.warning("Demoted %d stale NOW_PLAYING queue items on startup", demoted)
    finally:
        db.close()

    if settings.ENABLE_EXPIRATION_SWEEPER:
        sweeper.start()


@app.on_event("shutdown")
def on_shutdown():
    if sweeper.running:
        sweeper.stop()


@app.get("/api/health")
def health_check():
    return {"status": "ok", "expiration_sweeper": sweeper.running}
