"""Alert creation, listing and resolution."""

from __future__ import annotations

import asyncio
import logging
import math
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from safetrip.core.errors import NotFoundError
from safetrip.core.timeutil import as_utc, utcnow
from safetrip.core.ws_manager import EVENT_EMERGENCY, realtime_hub
from safetrip.models.alert import Alert
from safetrip.models.alert_notification import AlertNotification
from safetrip.models.trip import TRIP_ACTIVE, TRIP_ALERTED, Trip
from safetrip.models.user import User
from safetrip.schemas.alert import SosRequest
from safetrip.services.escalation_service import escalate
from safetrip.services.notifications import NotificationDispatcher
from safetrip.services.trip_service import get_owned_trip

if TYPE_CHECKING:
    from safetrip.services.trip_timer import TripTimerEngine

logger = logging.getLogger(__name__)

MISSED_TRIP_END_MESSAGE = "User missed trip completion check-in"
MISSED_CHECKIN_MESSAGE = "User missed scheduled check-in"
SOS_MESSAGE = "SOS emergency triggered by user"


def transition_to_alerted(
    db: Session,
    trip: Trip,
    *,
    alert_type: str,
    severity: str,
    message: str,
    latitude: float | None,
    longitude: float | None,
    address: str | None = None,
    accuracy: float | None = None,
    location_at=None,
    battery_level: int | None = None,
) -> Alert | None:
    """
    Move ``trip`` from active to alerted and create its alert in one commit.

    The status write is a conditional UPDATE, so of any number of concurrent
    callers exactly one gets an Alert back; the rest get None. On a database
    error everything is rolled back (the trip stays active) and the error is
    re-raised.
    """
    now = utcnow()
    try:
        result = db.execute(
            update(Trip)
            .where(Trip.id == trip.id, Trip.status == TRIP_ACTIVE)
            .values(status=TRIP_ALERTED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            return None
        alert = Alert(
            trip_id=trip.id,
            user_id=trip.user_id,
            type=alert_type,
            severity=severity,
            message=message,
            latitude=latitude,
            longitude=longitude,
            address=address,
            accuracy=accuracy,
            location_at=location_at or now,
            battery_level=battery_level,
            is_resolved=False,
            community_notified=False,
            created_at=now,
        )
        db.add(alert)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(alert)
    db.refresh(trip)
    return alert


def get_owned_alert(db: Session, user_id: int, alert_id: int) -> Alert:
    alert = db.get(Alert, alert_id)
    if not alert or alert.user_id != user_id:
        raise NotFoundError("Alert not found")
    return alert


def list_notifications(db: Session, alert_ids: list[int]) -> dict[int, list[AlertNotification]]:
    """Audit rows grouped by alert id, in append order."""
    if not alert_ids:
        return {}
    rows = db.execute(
        select(AlertNotification)
        .where(AlertNotification.alert_id.in_(alert_ids))
        .order_by(AlertNotification.id)
    ).scalars().all()
    grouped: dict[int, list[AlertNotification]] = {aid: [] for aid in alert_ids}
    for row in rows:
        grouped[row.alert_id].append(row)
    return grouped


def _emergency_event(alert: Alert) -> dict[str, Any]:
    return {
        "alertId": alert.id,
        "type": alert.type,
        "location": {"latitude": alert.latitude, "longitude": alert.longitude},
        "timestamp": as_utc(alert.created_at).isoformat(),
    }


def broadcast_emergency(user_id: int, event: dict[str, Any]) -> None:
    """Push an ``emergency`` event to the owner's sockets without waiting on it."""
    asyncio.get_running_loop().create_task(realtime_hub.send_to_user(user_id, EVENT_EMERGENCY, event))


def _reload_alert(db: Session, alert_id: int) -> Alert:
    alert = db.get(Alert, alert_id)
    db.refresh(alert)
    return alert


def _record_sos(
    db: Session,
    user: User,
    data: SosRequest,
    timers: TripTimerEngine,
) -> tuple[int, int, dict[str, Any]]:
    latitude = data.location.latitude if data.location else user.latitude
    longitude = data.location.longitude if data.location else user.longitude
    accuracy = data.location.accuracy if data.location else None
    location_at = (data.location.timestamp if data.location else None) or utcnow()
    battery = data.battery_level if data.battery_level is not None else user.battery_level

    alert: Alert | None = None
    trip: Trip | None = None
    if data.trip_id is not None:
        trip = get_owned_trip(db, user.id, data.trip_id)
        alert = transition_to_alerted(
            db,
            trip,
            alert_type=data.type,
            severity="critical",
            message=SOS_MESSAGE,
            latitude=latitude,
            longitude=longitude,
            accuracy=accuracy,
            location_at=location_at,
            battery_level=battery,
        )
        if alert is not None:
            timers.cancel_trip(trip.id)

    if alert is None:
        alert = Alert(
            trip_id=trip.id if trip else None,
            user_id=user.id,
            type=data.type,
            severity="critical",
            message=SOS_MESSAGE,
            latitude=latitude,
            longitude=longitude,
            accuracy=accuracy,
            location_at=location_at,
            battery_level=battery,
            is_resolved=False,
            community_notified=False,
            created_at=utcnow(),
        )
        db.add(alert)
        db.commit()
        db.refresh(alert)

    logger.warning("SOS alert_id=%s type=%s user_id=%s trip_id=%s", alert.id, alert.type, user.id, alert.trip_id)
    return alert.id, user.id, _emergency_event(alert)


async def trigger_sos(
    db: Session,
    user: User,
    data: SosRequest,
    dispatcher: NotificationDispatcher,
    timers: TripTimerEngine,
) -> Alert:
    """
    Raise a critical alert, with or without a trip.

    A referenced active trip goes through the guarded transition and its
    timers are cancelled. A trip that is already terminal only gets linked.
    """
    alert_id, user_id, event = await run_in_threadpool(_record_sos, db, user, data, timers)
    broadcast_emergency(user_id, event)
    await escalate(db, user_id, alert_id, dispatcher)
    return await run_in_threadpool(_reload_alert, db, alert_id)


def _record_missed_checkin(db: Session, user: User, trip_id: int, timers: TripTimerEngine) -> tuple[int, int] | None:
    trip = get_owned_trip(db, user.id, trip_id)
    if trip.status != TRIP_ACTIVE:
        raise NotFoundError("Active trip not found")
    if utcnow() <= as_utc(trip.next_checkin_at):
        return None

    alert = transition_to_alerted(
        db,
        trip,
        alert_type="checkin_missed",
        severity="high",
        message=MISSED_CHECKIN_MESSAGE,
        latitude=trip.current_latitude if trip.current_latitude is not None else trip.start_latitude,
        longitude=trip.current_longitude if trip.current_longitude is not None else trip.start_longitude,
        location_at=trip.current_location_at,
        battery_level=trip.current_battery_level if trip.current_battery_level is not None else user.battery_level,
    )
    if alert is None:
        raise NotFoundError("Active trip not found")
    timers.cancel_trip(trip.id)
    logger.warning("Missed check-in alert_id=%s trip_id=%s", alert.id, trip.id)
    return alert.id, user.id


async def check_missed_checkin(
    db: Session,
    user: User,
    trip_id: int,
    dispatcher: NotificationDispatcher,
    timers: TripTimerEngine,
) -> Alert | None:
    """Escalate when the periodic check-in deadline has passed. None if not yet missed."""
    claimed = await run_in_threadpool(_record_missed_checkin, db, user, trip_id, timers)
    if claimed is None:
        return None
    alert_id, user_id = claimed
    await escalate(db, user_id, alert_id, dispatcher)
    return await run_in_threadpool(_reload_alert, db, alert_id)


def list_alerts(
    db: Session,
    user_id: int,
    page: int = 1,
    limit: int = 20,
    alert_type: str | None = None,
    resolved: bool | None = None,
) -> tuple[list[Alert], int]:
    """Newest-first page of the user's alerts plus the filtered total."""
    filters = [Alert.user_id == user_id]
    if alert_type:
        filters.append(Alert.type == alert_type)
    if resolved is not None:
        filters.append(Alert.is_resolved.is_(resolved))

    total = db.execute(select(func.count()).select_from(Alert).where(*filters)).scalar_one()
    alerts = db.execute(
        select(Alert)
        .where(*filters)
        .order_by(Alert.created_at.desc(), Alert.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()
    return list(alerts), total


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def resolve_alert(db: Session, user_id: int, alert_id: int) -> Alert:
    alert = get_owned_alert(db, user_id, alert_id)
    if not alert.is_resolved:
        alert.is_resolved = True
        alert.resolved_at = utcnow()
        db.commit()
        db.refresh(alert)
    return alert


def delete_alert(db: Session, user_id: int, alert_id: int) -> None:
    alert = get_owned_alert(db, user_id, alert_id)
    db.execute(delete(AlertNotification).where(AlertNotification.alert_id == alert.id))
    db.delete(alert)
    db.commit()


def alert_stats(db: Session, user_id: int) -> dict[str, Any]:
    base = select(func.count()).select_from(Alert).where(Alert.user_id == user_id)
    since = utcnow() - timedelta(days=30)
    by_type = db.execute(
        select(Alert.type, func.count()).where(Alert.user_id == user_id).group_by(Alert.type)
    ).all()
    return {
        "total": db.execute(base).scalar_one(),
        "resolved": db.execute(base.where(Alert.is_resolved.is_(True))).scalar_one(),
        "critical": db.execute(base.where(Alert.severity == "critical")).scalar_one(),
        "recent": db.execute(base.where(Alert.created_at >= since)).scalar_one(),
        "by_type": {t: c for t, c in by_type},
    }
