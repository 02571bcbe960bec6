"""Diagnostics API for inspecting the navigation session."""

from fastapi import APIRouter

router = APIRouter(prefix="/api/diagnostics", tags=["diagnostics"])

# Will be set by main.py
session = None


@router.get("")
async def get_diagnostics():
    """Session counters plus current indices, off-route window and camera state."""
    if session is None:
        return {"error": "Session not initialized"}
    return session.get_diagnostics()


@router.get("/events")
async def get_event_diagnostics(limit: int = 100):
    """Recent step changes, off-route confirmations and rejected fixes."""
    if session is None:
        return {"error": "Session not initialized"}
    return session.get_event_diagnostics(limit=limit)
