"""Safe zone management and location safety checks."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from safetrip.core.errors import InvalidInputError, NotFoundError
from safetrip.models.safe_zone import SafeZone
from safetrip.schemas.safe_zone import SafeZoneCreate, SafeZoneUpdate
from safetrip.services.geo_service import SafetyReport, check_location_safety

logger = logging.getLogger(__name__)


def list_safe_zones(db: Session, user_id: int, active_only: bool = False) -> list[SafeZone]:
    stmt = select(SafeZone).where(SafeZone.user_id == user_id)
    if active_only:
        stmt = stmt.where(SafeZone.is_active.is_(True))
    return list(db.execute(stmt.order_by(SafeZone.created_at.desc(), SafeZone.id.desc())).scalars().all())


def get_owned_zone(db: Session, user_id: int, zone_id: int) -> SafeZone:
    zone = db.get(SafeZone, zone_id)
    if not zone or zone.user_id != user_id:
        raise NotFoundError("Safe zone not found")
    return zone


def _name_taken(db: Session, user_id: int, name: str, exclude_id: int | None = None) -> bool:
    stmt = select(SafeZone.id).where(SafeZone.user_id == user_id, SafeZone.name == name)
    if exclude_id is not None:
        stmt = stmt.where(SafeZone.id != exclude_id)
    return db.execute(stmt).first() is not None


def _commit_unique(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise InvalidInputError("You already have a safe zone with this name") from exc


def create_safe_zone(db: Session, user_id: int, data: SafeZoneCreate) -> SafeZone:
    name = data.name.strip()
    if _name_taken(db, user_id, name):
        raise InvalidInputError("You already have a safe zone with this name")
    zone = SafeZone(
        user_id=user_id,
        name=name,
        latitude=data.latitude,
        longitude=data.longitude,
        radius=data.radius,
        address=data.address or f"{name} Location",
        type=data.type,
        is_active=True,
    )
    db.add(zone)
    _commit_unique(db)
    db.refresh(zone)
    return zone


def update_safe_zone(db: Session, user_id: int, zone_id: int, data: SafeZoneUpdate) -> SafeZone:
    zone = get_owned_zone(db, user_id, zone_id)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if "name" in changes:
        changes["name"] = changes["name"].strip()
        if changes["name"] != zone.name and _name_taken(db, user_id, changes["name"], exclude_id=zone.id):
            raise InvalidInputError("You already have another safe zone with this name")
    for field, value in changes.items():
        setattr(zone, field, value)
    _commit_unique(db)
    db.refresh(zone)
    return zone


def delete_safe_zone(db: Session, user_id: int, zone_id: int) -> dict[str, int | str]:
    zone = get_owned_zone(db, user_id, zone_id)
    deleted = {"id": zone.id, "name": zone.name}
    db.delete(zone)
    db.commit()
    return deleted


def toggle_safe_zone(db: Session, user_id: int, zone_id: int) -> SafeZone:
    zone = get_owned_zone(db, user_id, zone_id)
    zone.is_active = not zone.is_active
    db.commit()
    db.refresh(zone)
    return zone


def check_safety(db: Session, user_id: int, latitude: float, longitude: float) -> SafetyReport:
    """Evaluate a point against the user's active zones only."""
    zones = list_safe_zones(db, user_id, active_only=True)
    report = check_location_safety(latitude, longitude, zones)
    logger.debug(
        "Safety check user_id=%s zones=%d inside=%d", user_id, report.total_zones_checked, report.in_safe_zones
    )
    return report
