"""Trips API: start, check in, ping, end, cancel, status and history."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from safetrip.core.deps import get_current_user, get_trip_timers
from safetrip.core.errors import to_http_exception
from safetrip.core.timeutil import as_utc, minutes_until, utcnow
from safetrip.db.session import get_db
from safetrip.models.trip import Trip
from safetrip.models.user import User
from safetrip.schemas.common import Place
from safetrip.schemas.trip import (
    CheckInResponse,
    CheckInTimer,
    CurrentLocation,
    TripCheckInRequest,
    TripDuration,
    TripExportResponse,
    TripHistoryResponse,
    TripIdRequest,
    TripLocationRequest,
    TripResponse,
    TripStartRequest,
    TripStatsResponse,
    TripStatusResponse,
)
from safetrip.services import trip_service
from safetrip.services.alert_service import total_pages
from safetrip.services.trip_timer import TripTimerEngine

router = APIRouter(prefix="/trips", tags=["trips"])


def _current_location(trip: Trip) -> CurrentLocation | None:
    if trip.current_latitude is None or trip.current_longitude is None:
        return None
    return CurrentLocation(
        latitude=trip.current_latitude,
        longitude=trip.current_longitude,
        battery_level=trip.current_battery_level,
        timestamp=as_utc(trip.current_location_at),
    )


def _trip_response(trip: Trip, alert_ids: list[int]) -> TripResponse:
    return TripResponse(
        id=trip.id,
        user_id=trip.user_id,
        status=trip.status,
        start_location=Place(
            latitude=trip.start_latitude, longitude=trip.start_longitude, address=trip.start_address
        ),
        end_location=Place(latitude=trip.end_latitude, longitude=trip.end_longitude, address=trip.end_address),
        duration=TripDuration(planned=trip.planned_duration_min, actual=trip.actual_duration_min),
        reminder_minutes=trip.reminder_minutes,
        trip_end_time=as_utc(trip.trip_end_time),
        reminder_time=as_utc(trip.reminder_time),
        check_in_timer=CheckInTimer(
            next_check_in=as_utc(trip.next_checkin_at),
            interval=trip.checkin_interval_min,
            last_check_in=as_utc(trip.last_checkin_at),
        ),
        current_location=_current_location(trip),
        alerts=alert_ids,
        created_at=as_utc(trip.created_at),
        completed_at=as_utc(trip.completed_at),
    )


def _single(db: Session, trip: Trip) -> TripResponse:
    return _trip_response(trip, trip_service.trip_alert_ids(db, [trip.id])[trip.id])


@router.post("/start", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
def start_trip(
    data: TripStartRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    timers: TripTimerEngine = Depends(get_trip_timers),
):
    """Start a trip. Reminder fires ``reminder_minutes`` before the end; expiry auto-alerts contacts."""
    try:
        trip = trip_service.start_trip(db, current_user, data, timers)
    except ValueError as e:
        raise to_http_exception(e)
    return _trip_response(trip, [])


@router.post("/checkin", response_model=CheckInResponse)
def check_in(
    data: TripCheckInRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Confirm safety; resets the periodic check-in deadline only."""
    try:
        trip = trip_service.check_in(db, current_user, data.trip_id, data.location, data.battery_level)
    except ValueError as e:
        raise to_http_exception(e)
    return CheckInResponse(message="Check-in successful", next_check_in=as_utc(trip.next_checkin_at))


@router.post("/location")
def update_location(
    data: TripLocationRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        trip_service.update_location(db, current_user, data.trip_id, data.location, data.battery_level)
    except ValueError as e:
        raise to_http_exception(e)
    return {"message": "Location updated"}


@router.post("/end", response_model=TripResponse)
def end_trip(
    data: TripIdRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    timers: TripTimerEngine = Depends(get_trip_timers),
):
    """Complete the trip and stop its timers."""
    try:
        trip = trip_service.end_trip(db, current_user, data.trip_id, timers)
    except ValueError as e:
        raise to_http_exception(e)
    return _single(db, trip)


@router.post("/cancel", response_model=TripResponse)
def cancel_trip(
    data: TripIdRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    timers: TripTimerEngine = Depends(get_trip_timers),
):
    try:
        trip = trip_service.cancel_trip(db, current_user, data.trip_id, timers)
    except ValueError as e:
        raise to_http_exception(e)
    return _single(db, trip)


@router.get("/active", response_model=TripResponse | None)
def get_active_trip(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    trip = trip_service.get_active_trip(db, current_user.id)
    return _single(db, trip) if trip else None


@router.get("/history", response_model=TripHistoryResponse)
def trip_history(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    status_filter: str | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Newest first; ``status=all`` or no status returns every trip."""
    try:
        trips, total = trip_service.trip_history(db, current_user.id, page, limit, status_filter)
    except ValueError as e:
        raise to_http_exception(e)
    alert_map = trip_service.trip_alert_ids(db, [t.id for t in trips])
    return TripHistoryResponse(
        trips=[_trip_response(t, alert_map[t.id]) for t in trips],
        total=total,
        total_pages=total_pages(total, limit),
        current_page=page,
    )


@router.get("/stats", response_model=TripStatsResponse)
def trip_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return trip_service.trip_stats(db, current_user.id)


@router.get("/export", response_model=TripExportResponse)
def export_trips(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    rows = trip_service.export_trips(db, current_user.id)
    return TripExportResponse(data=rows, total=len(rows))


@router.get("/{trip_id}/status", response_model=TripStatusResponse)
def trip_status(
    trip_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Status plus whole minutes left before the trip deadline (never negative)."""
    try:
        trip = trip_service.get_owned_trip(db, current_user.id, trip_id)
    except ValueError as e:
        raise to_http_exception(e)
    return TripStatusResponse(
        id=trip.id,
        status=trip.status,
        created_at=as_utc(trip.created_at),
        trip_end_time=as_utc(trip.trip_end_time),
        reminder_time=as_utc(trip.reminder_time),
        time_remaining=minutes_until(trip.trip_end_time, utcnow()) or 0,
        current_location=_current_location(trip),
    )
