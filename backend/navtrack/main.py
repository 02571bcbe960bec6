"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from navtrack.api import diagnostics, navigation, ws
from navtrack.config import settings
from navtrack.core.broadcaster import Broadcaster
from navtrack.core.engine import NavigationEngine
from navtrack.core.scheduler import create_scheduler
from navtrack.core.session import NavigationSession

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    broadcaster = Broadcaster()
    await broadcaster.connect()

    engine = NavigationEngine(settings.navigation)
    session = NavigationSession(engine, broadcaster)

    scheduler = create_scheduler()

    # Wire up API modules
    ws.broadcaster = broadcaster
    ws.session = session
    navigation.session = session
    navigation.scheduler = scheduler
    diagnostics.session = session

    scheduler.start()
    logger.info("Navigation service started (redis: %s)", "on" if settings.redis_url else "off")

    yield

    scheduler.shutdown(wait=False)
    session.stop()
    await broadcaster.close()
    ws.broadcaster = None
    ws.session = None
    navigation.session = None
    navigation.scheduler = None
    diagnostics.session = None
    logger.info("Navigation service shut down")


app = FastAPI(
    title="Navigation Tracking Engine",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(navigation.router)
app.include_router(diagnostics.router)
app.include_router(ws.router)


@app.get("/api/health")
async def health():
    session = navigation.session
    return {
        "status": "ok" if session is not None else "starting",
        "navigating": bool(session and session.active),
    }
