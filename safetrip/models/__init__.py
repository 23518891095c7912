"""SQLAlchemy models."""

from __future__ import annotations

from safetrip.models.alert import Alert
from safetrip.models.alert_notification import AlertNotification
from safetrip.models.emergency_contact import EmergencyContact
from safetrip.models.safe_zone import SafeZone
from safetrip.models.trip import Trip
from safetrip.models.user import User
from safetrip.models.user_settings import UserSettings

__all__ = [
    "User",
    "UserSettings",
    "EmergencyContact",
    "Trip",
    "Alert",
    "AlertNotification",
    "SafeZone",
]
