"""Per-trip reminder and expiry timers.

One engine per process. Timers are asyncio tasks living on the application
event loop, so they are lost when the process exits; on startup
:meth:`TripTimerEngine.restore_active_trips` re-arms them from the deadlines
stored on each active trip.

The persisted ``Trip.status`` is the source of truth. Every callback re-reads
it, and the expiry path only escalates after winning the conditional
active -> alerted update, so a duplicate or late timer is a no-op.

Callbacks run on the event loop; their database work goes through the
threadpool.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from safetrip.core.timeutil import as_utc, minutes_until, utcnow
from safetrip.core.ws_manager import EVENT_TRIP_ALERTED, RealtimeHub
from safetrip.models.trip import TRIP_ACTIVE, Trip
from safetrip.models.user import User
from safetrip.services.alert_service import MISSED_TRIP_END_MESSAGE, transition_to_alerted
from safetrip.services.escalation_service import escalate
from safetrip.services.notifications import NotificationDispatcher, format_trip_reminder

logger = logging.getLogger(__name__)

TimerCallback = Callable[[int], Awaitable[None]]


class TripTimerEngine:
    """Registry of armed timers keyed by trip id.

    ``schedule_trip`` and ``cancel_trip`` may be called from any thread (sync
    route handlers run in a worker pool); the registry itself is only touched
    on the event loop thread.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        dispatcher: NotificationDispatcher,
        broadcaster: RealtimeHub | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self._broadcaster = broadcaster
        self._clock = clock
        self._timers: dict[int, list[asyncio.Task]] = {}
        self._loop: asyncio.AbstractEventLoop | None = None

    # ---------- loop binding ----------

    def attach(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Bind to ``loop`` (default: the running loop). Call once at startup."""
        self._loop = loop or asyncio.get_running_loop()

    def _call_in_loop(self, fn: Callable[..., None], *args) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.warning("Timer engine not attached to a running loop; %s%s dropped", fn.__name__, args)
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            fn(*args)
        else:
            loop.call_soon_threadsafe(fn, *args)

    # ---------- public registry operations ----------

    def schedule_trip(self, trip: Trip) -> None:
        """(Re)arm reminder and expiry timers for ``trip``. Replaces any existing timers."""
        self._call_in_loop(self._arm, trip.id, as_utc(trip.reminder_time), as_utc(trip.trip_end_time))

    def cancel_trip(self, trip_id: int) -> None:
        """Cancel every pending timer of ``trip_id``. No-op when none are armed."""
        self._call_in_loop(self._disarm, trip_id)

    def is_scheduled(self, trip_id: int) -> bool:
        return bool(self._timers.get(trip_id))

    def pending_count(self, trip_id: int) -> int:
        return len(self._timers.get(trip_id, ()))

    @property
    def scheduled_trip_ids(self) -> list[int]:
        return [tid for tid, tasks in self._timers.items() if tasks]

    def shutdown(self) -> None:
        """Cancel all timers (called from the app lifespan on exit)."""
        for trip_id in list(self._timers):
            self._disarm(trip_id)
        logger.info("Trip timers stopped")

    # ---------- arming ----------

    def _arm(self, trip_id: int, reminder_time: datetime, trip_end_time: datetime) -> None:
        self._disarm(trip_id)
        now = self._clock()
        reminder_delay = (reminder_time - now).total_seconds()
        expiry_delay = (trip_end_time - now).total_seconds()

        tasks: list[asyncio.Task] = []
        # A passed reminder still fires while the trip has time left
        if reminder_delay > 0 or expiry_delay > 0:
            tasks.append(self._spawn(trip_id, "reminder", max(reminder_delay, 0.0), self.run_reminder))
        tasks.append(self._spawn(trip_id, "expiry", max(expiry_delay, 0.0), self.run_expiry))
        self._timers[trip_id] = tasks
        logger.debug(
            "Armed trip_id=%s reminder_in=%.0fs expiry_in=%.0fs", trip_id, reminder_delay, expiry_delay
        )

    def _spawn(self, trip_id: int, kind: str, delay: float, callback: TimerCallback) -> asyncio.Task:
        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(self._fire_after(delay, callback, trip_id), name=f"trip-{trip_id}-{kind}")
        task.add_done_callback(functools.partial(self._forget, trip_id))
        return task

    async def _fire_after(self, delay: float, callback: TimerCallback, trip_id: int) -> None:
        await asyncio.sleep(delay)
        try:
            await callback(trip_id)
        except Exception:
            logger.exception("Timer callback %s failed for trip_id=%s", callback.__name__, trip_id)

    def _forget(self, trip_id: int, task: asyncio.Task) -> None:
        tasks = self._timers.get(trip_id)
        if not tasks:
            return
        if task in tasks:
            tasks.remove(task)
        if not tasks:
            self._timers.pop(trip_id, None)

    def _disarm(self, trip_id: int) -> None:
        tasks = self._timers.pop(trip_id, [])
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        for task in tasks:
            if task is not current and not task.done():
                task.cancel()
        if tasks:
            logger.debug("Disarmed %d timer(s) for trip_id=%s", len(tasks), trip_id)

    # ---------- callbacks ----------

    def _reminder_target(self, trip_id: int) -> tuple[str, str | None, int] | None:
        with self.session_factory() as db:
            trip = db.get(Trip, trip_id)
            if trip is None or trip.status != TRIP_ACTIVE:
                logger.debug("Reminder for trip_id=%s skipped (not active)", trip_id)
                return None
            user = db.get(User, trip.user_id)
            if user is None:
                return None
            return user.phone, user.fcm_token, minutes_until(trip.trip_end_time, self._clock()) or 0

    async def run_reminder(self, trip_id: int) -> None:
        """Tell the trip owner the trip is about to end. Touches no trip or alert state.

        Push goes first when the user has a device token; a failed push, or
        no token at all, falls back to SMS.
        """
        target = await run_in_threadpool(self._reminder_target, trip_id)
        if target is None:
            return
        phone, device_token, minutes_left = target
        title, body = format_trip_reminder(minutes_left)
        result = None
        if device_token:
            result = await self.dispatcher.send_push(
                device_token, title, body, {"type": "trip_reminder", "tripId": str(trip_id)}
            )
            if not result.success:
                logger.info("Push reminder for trip_id=%s failed (%s); trying SMS", trip_id, result.error)
        if result is None or not result.success:
            result = await self.dispatcher.send_sms(phone, f"{title}: {body}")
        if result.success:
            logger.info("Reminder sent for trip_id=%s via %s", trip_id, result.provider)
        else:
            logger.warning("Reminder for trip_id=%s not delivered: %s", trip_id, result.error)

    def _claim_expiry(self, db: Session, trip_id: int) -> tuple[int, int] | None:
        """Win the active -> alerted transition. Returns ``(user_id, alert_id)`` or None."""
        trip = db.get(Trip, trip_id)
        if trip is None or trip.status != TRIP_ACTIVE:
            logger.debug("Expiry for trip_id=%s skipped (not active)", trip_id)
            return None
        user = db.get(User, trip.user_id)
        if user is None:
            return None

        has_current = trip.current_latitude is not None and trip.current_longitude is not None
        try:
            alert = transition_to_alerted(
                db,
                trip,
                alert_type="checkin_missed",
                severity="high",
                message=MISSED_TRIP_END_MESSAGE,
                latitude=trip.current_latitude if has_current else trip.start_latitude,
                longitude=trip.current_longitude if has_current else trip.start_longitude,
                address=None if has_current else trip.start_address,
                location_at=trip.current_location_at,
                battery_level=(
                    trip.current_battery_level if trip.current_battery_level is not None else user.battery_level
                ),
            )
        except SQLAlchemyError:
            logger.exception("Could not alert expired trip_id=%s; it stays active", trip_id)
            return None
        if alert is None:
            logger.info("Expiry for trip_id=%s lost the race; already handled", trip_id)
            return None

        logger.warning("Trip expired without completion: trip_id=%s alert_id=%s", trip_id, alert.id)
        return user.id, alert.id

    async def run_expiry(self, trip_id: int) -> None:
        """Auto-alert when the trip deadline passes while the trip is still active."""
        db = self.session_factory()
        try:
            claimed = await run_in_threadpool(self._claim_expiry, db, trip_id)
            if claimed is None:
                return
            user_id, alert_id = claimed
            self._disarm(trip_id)
            await escalate(db, user_id, alert_id, self.dispatcher)
        finally:
            await run_in_threadpool(db.close)
        await self._publish(user_id, alert_id, trip_id)

    async def _publish(self, user_id: int, alert_id: int, trip_id: int) -> None:
        if self._broadcaster is None:
            return
        try:
            delivered = await self._broadcaster.send_to_user(
                user_id, EVENT_TRIP_ALERTED, {"tripId": trip_id, "alertId": alert_id, "type": "checkin_missed"}
            )
        except Exception:
            logger.exception("Realtime push failed for trip_id=%s", trip_id)
            return
        logger.debug("trip.alerted for trip_id=%s reached %s socket(s)", trip_id, delivered)

    # ---------- startup ----------

    def restore_active_trips(self) -> int:
        """Re-arm timers for every persisted active trip. Returns the number re-armed."""
        logger.info("Trip timers are process-local; re-arming from persisted deadlines")
        with self.session_factory() as db:
            rows = db.execute(
                select(Trip.id, Trip.reminder_time, Trip.trip_end_time).where(Trip.status == TRIP_ACTIVE)
            ).all()
        for trip_id, reminder_time, trip_end_time in rows:
            self._call_in_loop(self._arm, trip_id, as_utc(reminder_time), as_utc(trip_end_time))
        logger.info("Re-armed timers for %d active trip(s)", len(rows))
        return len(rows)
