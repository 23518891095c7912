"""Profile, settings, device token, location and emergency contact endpoints."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from safetrip.core.deps import get_current_user
from safetrip.core.errors import to_http_exception
from safetrip.db.session import get_db
from safetrip.models.user import User
from safetrip.schemas.auth import UserMe
from safetrip.schemas.user import (
    ContactCreate,
    ContactResponse,
    ContactUpdate,
    FcmTokenUpdate,
    LocationUpdate,
    ProfileUpdate,
    UserSettingsResponse,
    UserSettingsUpdate,
)
from safetrip.services import user_service

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/profile", response_model=UserMe)
def get_profile(current_user: User = Depends(get_current_user)):
    return current_user


@router.put("/profile", response_model=UserMe)
def update_profile(
    data: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return user_service.update_profile(db, current_user, data)


@router.get("/settings", response_model=UserSettingsResponse)
def get_settings(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get current user's settings (created with defaults on first access)."""
    s = user_service.get_or_create_settings(db, current_user.id)
    db.commit()
    return s


@router.put("/settings", response_model=UserSettingsResponse)
def update_settings(
    data: UserSettingsUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return user_service.update_settings(db, current_user, data)


@router.put("/fcm-token")
def update_fcm_token(
    data: FcmTokenUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Register the device push token."""
    user_service.update_fcm_token(db, current_user, data.fcm_token)
    return {"message": "FCM token updated"}


@router.put("/location", response_model=UserMe)
def update_location(
    data: LocationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Last known location, used for SOS fallback and community help matching."""
    return user_service.update_location(db, current_user, data.latitude, data.longitude, data.battery_level)


@router.get("/contacts", response_model=list[ContactResponse])
def list_contacts(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return user_service.list_contacts(db, current_user.id)


@router.post("/contacts", response_model=ContactResponse, status_code=status.HTTP_201_CREATED)
def add_contact(
    data: ContactCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Add an emergency contact. A new primary contact demotes the previous one."""
    return user_service.add_contact(db, current_user, data)


@router.put("/contacts/{contact_id}", response_model=ContactResponse)
def update_contact(
    contact_id: int,
    data: ContactUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return user_service.update_contact(db, current_user, contact_id, data)
    except ValueError as e:
        raise to_http_exception(e)


@router.delete("/contacts/{contact_id}")
def remove_contact(
    contact_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        user_service.remove_contact(db, current_user, contact_id)
    except ValueError as e:
        raise to_http_exception(e)
    return {"message": "Contact removed"}
