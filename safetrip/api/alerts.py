"""Alerts API: SOS, missed check-in escalation, history and resolution."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from safetrip.core.deps import get_current_user, get_dispatcher, get_trip_timers
from safetrip.core.errors import to_http_exception
from safetrip.core.timeutil import as_utc
from safetrip.db.session import get_db
from safetrip.models.alert import Alert
from safetrip.models.alert_notification import AlertNotification
from safetrip.models.user import User
from safetrip.schemas.alert import (
    AlertListResponse,
    AlertLocation,
    AlertResponse,
    AlertStatsResponse,
    MissedCheckinRequest,
    MissedCheckinResponse,
    NotificationSentResponse,
    SosRequest,
    SosResponse,
)
from safetrip.services import alert_service
from safetrip.services.notifications import NotificationDispatcher
from safetrip.services.trip_timer import TripTimerEngine

router = APIRouter(prefix="/alerts", tags=["alerts"])


def _alert_response(alert: Alert, notifications: list[AlertNotification]) -> AlertResponse:
    location = None
    if alert.latitude is not None or alert.address is not None:
        location = AlertLocation(
            latitude=alert.latitude,
            longitude=alert.longitude,
            address=alert.address,
            accuracy=alert.accuracy,
            timestamp=as_utc(alert.location_at),
        )
    return AlertResponse(
        id=alert.id,
        trip_id=alert.trip_id,
        user_id=alert.user_id,
        type=alert.type,
        severity=alert.severity,
        message=alert.message,
        location=location,
        battery_level=alert.battery_level,
        is_resolved=alert.is_resolved,
        resolved_at=as_utc(alert.resolved_at),
        community_notified=alert.community_notified,
        notifications_sent=[NotificationSentResponse.model_validate(n) for n in notifications],
        created_at=as_utc(alert.created_at),
    )


def _enrich(db: Session, alert: Alert) -> AlertResponse:
    return _alert_response(alert, alert_service.list_notifications(db, [alert.id])[alert.id])


@router.post("/sos", response_model=SosResponse, status_code=status.HTTP_201_CREATED)
async def trigger_sos(
    data: SosRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    timers: TripTimerEngine = Depends(get_trip_timers),
):
    """Raise a critical alert and notify emergency contacts (and nearby helpers if opted in)."""
    try:
        alert = await alert_service.trigger_sos(db, current_user, data, dispatcher, timers)
    except ValueError as e:
        raise to_http_exception(e)
    response = await run_in_threadpool(_enrich, db, alert)
    return SosResponse(alert=response, message="Emergency alert sent to your contacts")


@router.post("/check-missed-checkin", response_model=MissedCheckinResponse)
async def check_missed_checkin(
    data: MissedCheckinRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    timers: TripTimerEngine = Depends(get_trip_timers),
):
    """Escalate if the trip's periodic check-in deadline has passed."""
    try:
        alert = await alert_service.check_missed_checkin(db, current_user, data.trip_id, dispatcher, timers)
    except ValueError as e:
        raise to_http_exception(e)
    if alert is None:
        return MissedCheckinResponse(alert=None, message="Check-in not yet missed")
    response = await run_in_threadpool(_enrich, db, alert)
    return MissedCheckinResponse(alert=response, message="Missed check-in alert processed")


@router.get("", response_model=AlertListResponse)
def list_alerts(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    type: str | None = Query(default=None),
    resolved: bool | None = Query(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List current user's alerts, newest first."""
    alerts, total = alert_service.list_alerts(db, current_user.id, page, limit, type, resolved)
    notes = alert_service.list_notifications(db, [a.id for a in alerts])
    return AlertListResponse(
        alerts=[_alert_response(a, notes[a.id]) for a in alerts],
        total=total,
        total_pages=alert_service.total_pages(total, limit),
        current_page=page,
    )


@router.get("/stats", response_model=AlertStatsResponse)
def alert_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return alert_service.alert_stats(db, current_user.id)


@router.patch("/{alert_id}/resolve", response_model=AlertResponse)
def resolve_alert(
    alert_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        alert = alert_service.resolve_alert(db, current_user.id, alert_id)
    except ValueError as e:
        raise to_http_exception(e)
    return _enrich(db, alert)


@router.delete("/{alert_id}")
def delete_alert(
    alert_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        alert_service.delete_alert(db, current_user.id, alert_id)
    except ValueError as e:
        raise to_http_exception(e)
    return {"message": "Alert deleted"}
