"""safetrip FastAPI application."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from safetrip.api import alerts, auth, health, safe_zones, trips, users, ws
from safetrip.core.config import settings
from safetrip.core.ws_manager import realtime_hub
from safetrip.db.session import SessionLocal
from safetrip.services.notifications import build_dispatcher
from safetrip.services.trip_timer import TripTimerEngine

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    dispatcher = build_dispatcher(settings)
    timers = TripTimerEngine(SessionLocal, dispatcher, realtime_hub)
    timers.attach()
    app.state.dispatcher = dispatcher
    app.state.trip_timers = timers
    if settings.restore_timers_on_startup:
        timers.restore_active_trips()
    else:
        logger.warning("Timer restore disabled; persisted active trips have no armed timers")
    try:
        yield
    finally:
        timers.shutdown()


app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(trips.router)
app.include_router(alerts.router)
app.include_router(safe_zones.router)
app.include_router(ws.router)
