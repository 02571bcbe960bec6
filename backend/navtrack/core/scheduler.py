"""APScheduler setup for replay ticks."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from navtrack.core.session import NavigationSession

logger = logging.getLogger(__name__)

REPLAY_JOB_ID = "replay_fixes"


def create_scheduler() -> AsyncIOScheduler:
    return AsyncIOScheduler()


async def _replay_tick(session: NavigationSession, scheduler: AsyncIOScheduler) -> None:
    try:
        more = session.replay_tick()
    except Exception:
        logger.exception("Replay tick failed")
        more = False
    if not more and scheduler.get_job(REPLAY_JOB_ID) is not None:
        scheduler.remove_job(REPLAY_JOB_ID)


def start_replay(
    scheduler: AsyncIOScheduler,
    session: NavigationSession,
    speed_kmh: float,
    interval_seconds: float,
) -> None:
    """Feed simulated fixes into ``session`` every ``interval_seconds``."""
    session.start_replay(speed_kmh, interval_seconds)
    scheduler.add_job(
        _replay_tick,
        "interval",
        seconds=interval_seconds,
        args=[session, scheduler],
        id=REPLAY_JOB_ID,
        name="Feed replay fixes into the navigation session",
        max_instances=1,
        replace_existing=True,
    )
    logger.info("Replay running every %.2fs at %.1f km/h", interval_seconds, speed_kmh)


def stop_replay(scheduler: AsyncIOScheduler, session: NavigationSession) -> None:
    if scheduler.get_job(REPLAY_JOB_ID) is not None:
        scheduler.remove_job(REPLAY_JOB_ID)
    session.stop_replay()
