"""Safe zones API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from safetrip.core.deps import get_current_user
from safetrip.core.errors import to_http_exception
from safetrip.core.timeutil import round_half_up
from safetrip.db.session import get_db
from safetrip.models.user import User
from safetrip.schemas.safe_zone import (
    NearestZone,
    SafetyCheckRequest,
    SafetyCheckResponse,
    SafeZoneCreate,
    SafeZoneResponse,
    SafeZoneUpdate,
    ZoneSafetyResult,
    ZoneSummary,
)
from safetrip.services import safe_zone_service

router = APIRouter(prefix="/safe-zones", tags=["safe-zones"])


@router.get("", response_model=list[SafeZoneResponse])
def list_safe_zones(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return safe_zone_service.list_safe_zones(db, current_user.id)


@router.post("", response_model=SafeZoneResponse, status_code=status.HTTP_201_CREATED)
def create_safe_zone(
    data: SafeZoneCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Create a zone. Names are unique per user."""
    try:
        return safe_zone_service.create_safe_zone(db, current_user.id, data)
    except ValueError as e:
        raise to_http_exception(e)


@router.post("/check-safety", response_model=SafetyCheckResponse)
def check_safety(
    data: SafetyCheckRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Is the point inside any active zone? No active zones means not safe."""
    report = safe_zone_service.check_safety(db, current_user.id, data.latitude, data.longitude)
    nearest = None
    if report.nearest is not None:
        nearest = NearestZone(
            name=report.nearest.zone.name,
            distance=round_half_up(report.nearest.distance_m),
            type=report.nearest.zone.type,
        )
    return SafetyCheckResponse(
        is_safe=report.is_safe,
        total_zones_checked=report.total_zones_checked,
        in_safe_zones=report.in_safe_zones,
        nearest_safe_zone=nearest,
        results=[
            ZoneSafetyResult(
                safe_zone=ZoneSummary(id=r.zone.id, name=r.zone.name, type=r.zone.type, radius=r.zone.radius),
                is_within=r.is_within,
                distance=round_half_up(r.distance_m),
                safety_status=r.safety_status,
            )
            for r in report.results
        ],
    )


@router.put("/{zone_id}", response_model=SafeZoneResponse)
def update_safe_zone(
    zone_id: int,
    data: SafeZoneUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return safe_zone_service.update_safe_zone(db, current_user.id, zone_id, data)
    except ValueError as e:
        raise to_http_exception(e)


@router.patch("/{zone_id}/toggle", response_model=SafeZoneResponse)
def toggle_safe_zone(
    zone_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Flip ``is_active``."""
    try:
        return safe_zone_service.toggle_safe_zone(db, current_user.id, zone_id)
    except ValueError as e:
        raise to_http_exception(e)


@router.delete("/{zone_id}")
def delete_safe_zone(
    zone_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        deleted = safe_zone_service.delete_safe_zone(db, current_user.id, zone_id)
    except ValueError as e:
        raise to_http_exception(e)
    return {"message": "Safe zone deleted successfully", "deleted": deleted}
