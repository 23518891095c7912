"""Alert escalation: fan out to emergency contacts and nearby community helpers.

Every function here is best-effort. Failures are logged and swallowed so the
action that created the alert still succeeds for its caller.
"""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from safetrip.core.config import settings
from safetrip.core.timeutil import utcnow
from safetrip.core.trip_policies import COMMUNITY_HELP_RADIUS_M
from safetrip.models.alert import Alert
from safetrip.models.alert_notification import AlertNotification
from safetrip.models.emergency_contact import EmergencyContact
from safetrip.models.user import User
from safetrip.models.user_settings import UserSettings
from safetrip.services.geo_service import haversine_m
from safetrip.services.notifications import (
    DeliveryResult,
    NotificationDispatcher,
    format_community_push,
    format_emergency_sms,
)
from safetrip.services.user_service import get_or_create_settings

logger = logging.getLogger(__name__)


def _audit_entry(alert_id: int, contact_phone: str, outcome: DeliveryResult | BaseException) -> AlertNotification:
    if isinstance(outcome, BaseException):
        return AlertNotification(
            alert_id=alert_id,
            contact=contact_phone,
            method="sms",
            sent_at=utcnow(),
            status="failed",
            provider="unknown",
            note=f"{type(outcome).__name__}: {outcome}",
        )
    return AlertNotification(
        alert_id=alert_id,
        contact=contact_phone,
        method="sms",
        sent_at=utcnow(),
        status="sent" if outcome.success else "failed",
        provider=outcome.provider,
        sid=outcome.message_id,
        note=outcome.error or "",
    )


def _plan_contact_fanout(db: Session, user_id: int, alert_id: int) -> tuple[str, list[tuple[int, str]]] | None:
    """Message and ``(contact_id, phone)`` recipients, or None when nobody is texted."""
    user = db.get(User, user_id)
    alert = db.get(Alert, alert_id)
    if user is None or alert is None:
        return None
    contacts = db.execute(
        select(EmergencyContact.id, EmergencyContact.phone).where(
            EmergencyContact.user_id == user_id,
            EmergencyContact.phone.is_not(None),
            EmergencyContact.phone != "",
        )
    ).all()
    if not contacts:
        logger.info("No emergency contacts to notify for user_id=%s", user_id)
        return None

    user_settings = db.execute(
        select(UserSettings).where(UserSettings.user_id == user_id)
    ).scalar_one_or_none()
    if user_settings is not None and user_settings.sms_fallback is False:
        logger.info("SMS disabled for user_id=%s, alert_id=%s not texted", user_id, alert_id)
        return None

    message = format_emergency_sms(
        user_name=user.name,
        alert_type=alert.type,
        latitude=alert.latitude,
        longitude=alert.longitude,
        address=alert.address,
        battery_level=alert.battery_level,
        maps_base_url=settings.maps_base_url,
    )
    logger.info("Escalating alert_id=%s type=%s to %d contact(s)", alert_id, alert.type, len(contacts))
    return message, [(contact_id, phone) for contact_id, phone in contacts]


def _record_outcomes(
    db: Session,
    alert_id: int,
    recipients: list[tuple[int, str]],
    outcomes: list[DeliveryResult | BaseException],
) -> list[AlertNotification]:
    entries = [_audit_entry(alert_id, phone, o) for (_, phone), o in zip(recipients, outcomes)]
    for (contact_id, _), outcome in zip(recipients, outcomes):
        if isinstance(outcome, BaseException) or not outcome.success:
            logger.warning("SMS to contact_id=%s failed for alert_id=%s", contact_id, alert_id)
    try:
        db.add_all(entries)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not persist notification audit for alert_id=%s", alert_id)
    return entries


async def notify_emergency_contacts(
    db: Session,
    user_id: int,
    alert_id: int,
    dispatcher: NotificationDispatcher,
) -> list[AlertNotification]:
    """
    SMS every contact with a phone number, concurrently, then persist the
    audit trail in a single commit.

    SMS is skipped only when the user explicitly disabled ``sms_fallback``.
    Database work runs in the threadpool; only the sends run on the loop.
    Returns the appended audit rows (possibly empty).
    """
    try:
        plan = await run_in_threadpool(_plan_contact_fanout, db, user_id, alert_id)
        if plan is None:
            return []
        message, recipients = plan
        outcomes = await asyncio.gather(
            *(dispatcher.send_sms(phone, message) for _, phone in recipients),
            return_exceptions=True,
        )
    except Exception:
        logger.exception("Emergency contact fan-out failed for alert_id=%s", alert_id)
        return []
    return await run_in_threadpool(_record_outcomes, db, alert_id, recipients, outcomes)


def find_community_helpers(db: Session, user_id: int, latitude: float, longitude: float) -> list[User]:
    """Opted-in users other than ``user_id`` whose last location is within the help radius."""
    stmt = (
        select(User)
        .join(UserSettings, UserSettings.user_id == User.id)
        .where(
            UserSettings.community_help.is_(True),
            User.id != user_id,
            User.is_active.is_(True),
            User.latitude.is_not(None),
            User.longitude.is_not(None),
        )
    )
    return [
        u
        for u in db.execute(stmt).scalars().all()
        if haversine_m(latitude, longitude, u.latitude, u.longitude) <= COMMUNITY_HELP_RADIUS_M
    ]


def _plan_community_fanout(db: Session, user_id: int, alert_id: int) -> tuple[list[str], str, str, dict] | None:
    user = db.get(User, user_id)
    alert = db.get(Alert, alert_id)
    if user is None or alert is None:
        return None
    if alert.latitude is None or alert.longitude is None:
        logger.info("Alert alert_id=%s has no location, community fan-out skipped", alert_id)
        return None
    tokens = [
        h.fcm_token
        for h in find_community_helpers(db, user_id, alert.latitude, alert.longitude)
        if h.fcm_token
    ]
    logger.info("Notifying %d community helper(s) for alert_id=%s", len(tokens), alert_id)
    title, body = format_community_push(user.name, alert.latitude, alert.longitude)
    data = {"type": "community_help", "alertId": str(alert_id), "userId": str(user_id)}
    return tokens, title, body, data


def _mark_community_notified(db: Session, alert_id: int) -> None:
    try:
        db.execute(update(Alert).where(Alert.id == alert_id).values(community_notified=True))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise


async def notify_community_helpers(
    db: Session,
    user_id: int,
    alert_id: int,
    dispatcher: NotificationDispatcher,
) -> int:
    """Push nearby helpers, then mark the alert community-notified. Returns helpers pushed."""
    try:
        plan = await run_in_threadpool(_plan_community_fanout, db, user_id, alert_id)
        if plan is None:
            return 0
        tokens, title, body, data = plan
        await asyncio.gather(
            *(dispatcher.send_push(token, title, body, data) for token in tokens),
            return_exceptions=True,
        )
        await run_in_threadpool(_mark_community_notified, db, alert_id)
        return len(tokens)
    except Exception:
        logger.exception("Community fan-out failed for alert_id=%s", alert_id)
        return 0


def _community_help_enabled(db: Session, user_id: int) -> bool:
    try:
        enabled = get_or_create_settings(db, user_id).community_help
        db.commit()
        return enabled
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not read settings for user_id=%s", user_id)
        return False


async def escalate(db: Session, user_id: int, alert_id: int, dispatcher: NotificationDispatcher) -> None:
    """Contacts first, then community helpers when the user opted in."""
    await notify_emergency_contacts(db, user_id, alert_id, dispatcher)
    if await run_in_threadpool(_community_help_enabled, db, user_id):
        await notify_community_helpers(db, user_id, alert_id, dispatcher)
