"""Navigation REST API endpoints."""

from fastapi import APIRouter, HTTPException

from navtrack.config import settings
from navtrack.core import scheduler as replay_scheduler
from navtrack.core.session import NavigationNotStarted
from navtrack.schemas.navigation import (
    FixIn,
    IndexIn,
    MilestoneIn,
    MilestoneOut,
    ProgressOut,
    ReplayIn,
    RouteIn,
    RouteInfo,
    UpdateOut,
    progress_out,
    route_info,
    update_out,
)

router = APIRouter(prefix="/api/navigation", tags=["navigation"])

# Will be set by main.py
session = None
scheduler = None


def _session():
    if session is None:
        raise HTTPException(status_code=503, detail="Navigation service not ready")
    return session


@router.post("/route", response_model=RouteInfo)
async def start_route(body: RouteIn):
    """Start navigating a route, replacing the current one (reroute)."""
    nav = _session()
    try:
        route = body.to_route()
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if scheduler is not None:
        replay_scheduler.stop_replay(scheduler, nav)
    nav.start(route)
    return route_info(route)


@router.post("/route/candidate")
async def offer_route(body: RouteIn):
    """Switch to a freshly fetched route only if it beats the active one."""
    nav = _session()
    try:
        candidate = body.to_route()
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    try:
        faster = nav.offer_route(candidate)
    except NavigationNotStarted:
        raise HTTPException(status_code=409, detail="No active route")
    if faster and scheduler is not None:
        replay_scheduler.stop_replay(scheduler, nav)
    return {"faster": faster, "route": route_info(nav.state.route).model_dump()}


@router.delete("")
async def stop_navigation():
    nav = _session()
    if scheduler is not None:
        replay_scheduler.stop_replay(scheduler, nav)
    nav.stop()
    return {"status": "stopped"}


@router.post("/fixes", response_model=UpdateOut)
async def post_fix(body: FixIn):
    """Process one raw position fix."""
    nav = _session()
    try:
        update = nav.process_fix(body.to_location())
    except NavigationNotStarted:
        raise HTTPException(status_code=409, detail="No active route")
    return update_out(update)


@router.get("/progress", response_model=ProgressOut | None)
async def get_progress():
    nav = _session()
    if nav.state is None:
        return None
    return progress_out(nav.state.progress)


@router.post("/camera/recenter")
async def recenter():
    """Force a zoom recompute on the next fix."""
    nav = _session()
    try:
        nav.recenter()
    except NavigationNotStarted:
        raise HTTPException(status_code=409, detail="No active route")
    return {"status": "ok"}


@router.post("/index", response_model=ProgressOut | None)
async def skip_to(body: IndexIn):
    """Jump to an explicit leg/step, e.g. to skip a waypoint."""
    nav = _session()
    try:
        state = nav.skip_to(body.leg_index, body.step_index)
    except NavigationNotStarted:
        raise HTTPException(status_code=409, detail="No active route")
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return progress_out(state.progress)


@router.post("/replay")
async def start_replay(body: ReplayIn | None = None):
    """Drive the active route with simulated fixes."""
    nav = _session()
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Scheduler not running")
    body = body or ReplayIn()
    speed = body.speed_kmh or settings.replay_speed_kmh
    interval = body.interval_seconds or settings.replay_interval_seconds
    try:
        replay_scheduler.start_replay(scheduler, nav, speed, interval)
    except NavigationNotStarted:
        raise HTTPException(status_code=409, detail="No active route")
    return {"status": "replaying", "fixes": nav.replay.remaining, "speed_kmh": speed}


@router.delete("/replay")
async def stop_replay():
    nav = _session()
    if scheduler is not None:
        replay_scheduler.stop_replay(scheduler, nav)
    return {"status": "stopped"}


@router.get("/milestones", response_model=list[MilestoneOut])
async def list_milestones():
    nav = _session()
    return [
        MilestoneOut(identifier=m.identifier, scope=m.scope, instruction=m.instruction)
        for m in nav.engine.milestones
    ]


@router.post("/milestones", response_model=MilestoneOut)
async def add_milestone(body: MilestoneIn):
    """Register a trigger; a milestone with the same identifier is replaced."""
    nav = _session()
    try:
        milestone = body.to_milestone()
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    nav.engine.add_milestone(milestone)
    return MilestoneOut(identifier=milestone.identifier, scope=milestone.scope, instruction=milestone.instruction)


@router.delete("/milestones/{identifier}")
async def remove_milestone(identifier: int):
    nav = _session()
    if not nav.engine.remove_milestone(identifier):
        raise HTTPException(status_code=404, detail="Milestone not found")
    return {"status": "removed"}
