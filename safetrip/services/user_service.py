"""Profile, settings and emergency contact management."""

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from safetrip.core.errors import NotFoundError
from safetrip.core.timeutil import utcnow
from safetrip.models.emergency_contact import EmergencyContact
from safetrip.models.user import User
from safetrip.models.user_settings import UserSettings
from safetrip.schemas.user import ContactCreate, ContactUpdate, ProfileUpdate, UserSettingsUpdate


def get_or_create_settings(db: Session, user_id: int) -> UserSettings:
    """Settings row for ``user_id``; flushed but not committed when new."""
    stmt = select(UserSettings).where(UserSettings.user_id == user_id)
    s = db.execute(stmt).scalar_one_or_none()
    if not s:
        s = UserSettings(
            user_id=user_id,
            shake_detection=True,
            voice_commands=True,
            sms_fallback=True,
            community_help=False,
        )
        db.add(s)
        db.flush()
    return s


def update_settings(db: Session, user: User, data: UserSettingsUpdate) -> UserSettings:
    s = get_or_create_settings(db, user.id)
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(s, field, value)
    db.commit()
    db.refresh(s)
    return s


def update_profile(db: Session, user: User, data: ProfileUpdate) -> User:
    if data.name is not None:
        user.name = data.name.strip()
    if data.phone is not None:
        user.phone = data.phone.strip()
    db.commit()
    db.refresh(user)
    return user


def update_fcm_token(db: Session, user: User, token: str) -> User:
    user.fcm_token = token
    db.commit()
    db.refresh(user)
    return user


def record_user_location(
    user: User,
    latitude: float,
    longitude: float,
    battery_level: int | None = None,
) -> None:
    """Set last-known location (and battery) on ``user``. Caller commits."""
    user.latitude = latitude
    user.longitude = longitude
    user.location_updated_at = utcnow()
    if battery_level is not None:
        user.battery_level = battery_level


def update_location(db: Session, user: User, latitude: float, longitude: float, battery_level: int | None) -> User:
    record_user_location(user, latitude, longitude, battery_level)
    db.commit()
    db.refresh(user)
    return user


# ---------- Emergency contacts ----------


def list_contacts(db: Session, user_id: int) -> list[EmergencyContact]:
    stmt = (
        select(EmergencyContact)
        .where(EmergencyContact.user_id == user_id)
        .order_by(EmergencyContact.is_primary.desc(), EmergencyContact.id)
    )
    return list(db.execute(stmt).scalars().all())


def _clear_primary(db: Session, user_id: int, keep_id: int | None = None) -> None:
    stmt = update(EmergencyContact).where(EmergencyContact.user_id == user_id).values(is_primary=False)
    if keep_id is not None:
        stmt = stmt.where(EmergencyContact.id != keep_id)
    db.execute(stmt)


def _get_owned_contact(db: Session, user_id: int, contact_id: int) -> EmergencyContact:
    contact = db.get(EmergencyContact, contact_id)
    if not contact or contact.user_id != user_id:
        raise NotFoundError("Contact not found")
    return contact


def add_contact(db: Session, user: User, data: ContactCreate) -> EmergencyContact:
    if data.is_primary:
        _clear_primary(db, user.id)
    contact = EmergencyContact(
        user_id=user.id,
        name=data.name.strip(),
        phone=data.phone.strip(),
        email=data.email,
        relationship=data.relationship,
        is_primary=data.is_primary,
    )
    db.add(contact)
    db.commit()
    db.refresh(contact)
    return contact


def update_contact(db: Session, user: User, contact_id: int, data: ContactUpdate) -> EmergencyContact:
    contact = _get_owned_contact(db, user.id, contact_id)
    if data.is_primary:
        _clear_primary(db, user.id, keep_id=contact.id)
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(contact, field, value)
    db.commit()
    db.refresh(contact)
    return contact


def remove_contact(db: Session, user: User, contact_id: int) -> None:
    contact = _get_owned_contact(db, user.id, contact_id)
    db.delete(contact)
    db.commit()
