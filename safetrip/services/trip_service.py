"""Trip lifecycle: start, check-in, location pings, end, cancel and reporting."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from safetrip.core.errors import InvalidInputError, InvalidStateError, NotFoundError
from safetrip.core.timeutil import as_utc, round_half_up, round_minutes, utcnow
from safetrip.core.trip_policies import DEFAULT_CHECKIN_INTERVAL_MIN
from safetrip.models.alert import Alert
from safetrip.models.trip import (
    TRIP_ACTIVE,
    TRIP_ALERTED,
    TRIP_CANCELLED,
    TRIP_COMPLETED,
    TRIP_STATUSES,
    Trip,
)
from safetrip.models.user import User
from safetrip.schemas.common import GeoPoint
from safetrip.schemas.trip import TripStartRequest
from safetrip.services.user_service import record_user_location

if TYPE_CHECKING:
    from safetrip.services.trip_timer import TripTimerEngine

logger = logging.getLogger(__name__)


def get_owned_trip(db: Session, user_id: int, trip_id: int) -> Trip:
    """Trip owned by ``user_id``. Someone else's trip is reported as missing."""
    trip = db.get(Trip, trip_id)
    if not trip or trip.user_id != user_id:
        raise NotFoundError("Trip not found")
    return trip


def trip_alert_ids(db: Session, trip_ids: list[int]) -> dict[int, list[int]]:
    """Alert ids raised against each trip, oldest first."""
    if not trip_ids:
        return {}
    rows = db.execute(
        select(Alert.trip_id, Alert.id).where(Alert.trip_id.in_(trip_ids)).order_by(Alert.id)
    ).all()
    out: dict[int, list[int]] = {tid: [] for tid in trip_ids}
    for trip_id, alert_id in rows:
        out[trip_id].append(alert_id)
    return out


def start_trip(db: Session, user: User, data: TripStartRequest, timers: TripTimerEngine) -> Trip:
    """Create an active trip and arm its reminder and expiry timers."""
    if data.reminder_minutes >= data.duration:
        raise InvalidInputError("Reminder time must be less than trip duration")

    now = utcnow()
    trip_end_time = now + timedelta(minutes=data.duration)
    trip = Trip(
        user_id=user.id,
        status=TRIP_ACTIVE,
        start_latitude=data.start_location.latitude,
        start_longitude=data.start_location.longitude,
        start_address=data.start_location.address,
        end_latitude=data.end_location.latitude,
        end_longitude=data.end_location.longitude,
        end_address=data.end_location.address,
        planned_duration_min=data.duration,
        reminder_minutes=data.reminder_minutes,
        trip_end_time=trip_end_time,
        reminder_time=trip_end_time - timedelta(minutes=data.reminder_minutes),
        checkin_interval_min=DEFAULT_CHECKIN_INTERVAL_MIN,
        next_checkin_at=now + timedelta(minutes=DEFAULT_CHECKIN_INTERVAL_MIN),
        last_checkin_at=now,
        current_latitude=data.start_location.latitude,
        current_longitude=data.start_location.longitude,
        current_location_at=now,
        created_at=now,
    )
    db.add(trip)
    db.commit()
    db.refresh(trip)

    timers.schedule_trip(trip)
    logger.info(
        "Trip started: trip_id=%s user_id=%s duration=%smin reminder=%smin",
        trip.id,
        user.id,
        data.duration,
        data.reminder_minutes,
    )
    return trip


def _apply_location(trip: Trip, location: GeoPoint, battery_level: int | None) -> None:
    trip.current_latitude = location.latitude
    trip.current_longitude = location.longitude
    trip.current_location_at = location.timestamp or utcnow()
    if battery_level is not None:
        trip.current_battery_level = battery_level


def check_in(
    db: Session,
    user: User,
    trip_id: int,
    location: GeoPoint,
    battery_level: int | None = None,
) -> Trip:
    """
    Reset the periodic check-in deadline to now + interval.

    The trip end time and its timers are left alone; only ending the trip
    stops the expiry.
    """
    trip = get_owned_trip(db, user.id, trip_id)
    if trip.status != TRIP_ACTIVE:
        raise InvalidStateError(f"Trip is {trip.status}")

    now = utcnow()
    trip.last_checkin_at = now
    trip.next_checkin_at = now + timedelta(minutes=trip.checkin_interval_min)
    _apply_location(trip, location, battery_level)
    record_user_location(user, location.latitude, location.longitude, battery_level)
    db.commit()
    db.refresh(trip)
    logger.info("Check-in: trip_id=%s next=%s", trip.id, trip.next_checkin_at)
    return trip


def update_location(
    db: Session,
    user: User,
    trip_id: int,
    location: GeoPoint,
    battery_level: int | None = None,
) -> Trip:
    """Location ping. No effect on deadlines or timers."""
    trip = get_owned_trip(db, user.id, trip_id)
    if trip.status != TRIP_ACTIVE:
        raise InvalidStateError(f"Trip is {trip.status}")
    _apply_location(trip, location, battery_level)
    record_user_location(user, location.latitude, location.longitude, battery_level)
    db.commit()
    db.refresh(trip)
    return trip


def _finish(db: Session, user: User, trip_id: int, new_status: str, timers: TripTimerEngine) -> Trip:
    trip = get_owned_trip(db, user.id, trip_id)
    now = utcnow()
    actual = round_minutes((now - as_utc(trip.created_at)).total_seconds())
    result = db.execute(
        update(Trip)
        .where(Trip.id == trip.id, Trip.status == TRIP_ACTIVE)
        .values(status=new_status, actual_duration_min=actual, completed_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        db.refresh(trip)
        raise InvalidStateError(f"Trip is already {trip.status}")
    db.commit()
    db.refresh(trip)
    timers.cancel_trip(trip.id)
    return trip


def end_trip(db: Session, user: User, trip_id: int, timers: TripTimerEngine) -> Trip:
    """Complete an active trip, record its actual duration and stop its timers."""
    trip = _finish(db, user, trip_id, TRIP_COMPLETED, timers)
    logger.info("Trip completed: trip_id=%s actual=%smin", trip.id, trip.actual_duration_min)
    return trip


def cancel_trip(db: Session, user: User, trip_id: int, timers: TripTimerEngine) -> Trip:
    trip = _finish(db, user, trip_id, TRIP_CANCELLED, timers)
    logger.info("Trip cancelled: trip_id=%s", trip.id)
    return trip


def get_active_trip(db: Session, user_id: int) -> Trip | None:
    return db.execute(
        select(Trip)
        .where(Trip.user_id == user_id, Trip.status == TRIP_ACTIVE)
        .order_by(Trip.created_at.desc())
        .limit(1)
    ).scalar_one_or_none()


def trip_history(
    db: Session,
    user_id: int,
    page: int = 1,
    limit: int = 50,
    status: str | None = None,
) -> tuple[list[Trip], int]:
    """Newest-first page of trips, optionally filtered by status ("all" means no filter)."""
    filters = [Trip.user_id == user_id]
    if status and status != "all":
        if status not in TRIP_STATUSES:
            raise InvalidInputError(f"Unknown trip status {status!r}")
        filters.append(Trip.status == status)

    total = db.execute(select(func.count()).select_from(Trip).where(*filters)).scalar_one()
    trips = db.execute(
        select(Trip)
        .where(*filters)
        .order_by(Trip.created_at.desc(), Trip.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()
    return list(trips), total


def export_trips(db: Session, user_id: int) -> list[dict[str, Any]]:
    """Every trip of the user, newest first, flattened for download."""
    trips = db.execute(
        select(Trip).where(Trip.user_id == user_id).order_by(Trip.created_at.desc(), Trip.id.desc())
    ).scalars().all()
    alerts = trip_alert_ids(db, [t.id for t in trips])
    rows = []
    for t in trips:
        has_location = t.current_latitude is not None and t.current_longitude is not None
        rows.append(
            {
                "trip_id": t.id,
                "start_location": t.start_address or "Unknown",
                "end_location": t.end_address or "Unknown",
                "planned_duration_min": t.planned_duration_min or 0,
                "actual_duration_min": t.actual_duration_min or 0,
                "status": t.status,
                "start_time": as_utc(t.created_at),
                "end_time": as_utc(t.completed_at) if t.completed_at else "N/A",
                "alerts_count": len(alerts[t.id]),
                "last_location": f"{t.current_latitude}, {t.current_longitude}" if has_location else "N/A",
            }
        )
    return rows


def trip_stats(db: Session, user_id: int) -> dict[str, Any]:
    counts = dict(
        db.execute(
            select(Trip.status, func.count()).where(Trip.user_id == user_id).group_by(Trip.status)
        ).all()
    )
    total = sum(counts.values())
    completed = counts.get(TRIP_COMPLETED, 0)

    avg_duration, total_duration = db.execute(
        select(func.avg(Trip.actual_duration_min), func.sum(Trip.actual_duration_min)).where(
            Trip.user_id == user_id, Trip.actual_duration_min.is_not(None)
        )
    ).one()
    alert_types = dict(
        db.execute(
            select(Alert.type, func.count()).where(Alert.user_id == user_id).group_by(Alert.type)
        ).all()
    )
    return {
        "total_trips": total,
        "completed_trips": completed,
        "alerted_trips": counts.get(TRIP_ALERTED, 0),
        "active_trips": counts.get(TRIP_ACTIVE, 0),
        "cancelled_trips": counts.get(TRIP_CANCELLED, 0),
        "completion_rate": round_half_up(completed * 1000 / total) / 10 if total else 0.0,
        "average_duration": round_half_up(avg_duration) if avg_duration is not None else 0,
        "total_travel_time": int(total_duration or 0),
        "alert_types": alert_types,
    }
