"""Health check endpoint."""

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request) -> dict:
    """Return API health status and how many trips have armed timers."""
    timers = getattr(request.app.state, "trip_timers", None)
    return {
        "status": "ok",
        "armed_trips": len(timers.scheduled_trip_ids) if timers is not None else 0,
    }
