"""Notification dispatchers (SMS + push) and message formatting.

Business code only talks to :class:`NotificationDispatcher`. The concrete
dispatcher is picked once at startup by :func:`build_dispatcher`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

import httpx

from safetrip.core.config import Settings
from safetrip.core.timeutil import utcnow

logger = logging.getLogger(__name__)

ALERT_TYPE_LABELS = {
    "sos": "SOS EMERGENCY",
    "checkin_missed": "MISSED CHECK-IN",
    "route_deviation": "ROUTE DEVIATION",
    "battery_low": "LOW BATTERY",
    "safe_zone_breach": "SAFE ZONE BREACH",
    "duress_pin": "SILENT EMERGENCY",
    "shake_trigger": "SHAKE TRIGGER",
    "voice_trigger": "VOICE TRIGGER",
}

# Per alert type: (user line, closing line)
_SMS_VARIANTS = {
    "checkin_missed": ("User: {name}", "Check on them immediately."),
    "sos": ("User: {name} needs help!", "URGENT: Check immediately!"),
}
_DEFAULT_SMS_VARIANT = ("User: {name}", "Please check on them.")

# Lines kept when an SMS body has to be shortened
_ESSENTIAL_MARKERS = ("ALERT", "Location", "Map:", "User:", "Time:")


@dataclass
class DeliveryResult:
    """Outcome of a single SMS or push attempt. Never raised, always returned."""

    success: bool
    provider: str
    message_id: str | None = None
    error: str | None = None
    simulated: bool = False


class NotificationDispatcher(Protocol):
    async def send_sms(self, to_phone: str, message: str) -> DeliveryResult: ...

    async def send_push(
        self,
        device_token: str,
        title: str,
        body: str,
        data: dict[str, str] | None = None,
    ) -> DeliveryResult: ...


# ---------------------------------------------------------------------------
# Message formatting
# ---------------------------------------------------------------------------


def _format_location(latitude: float | None, longitude: float | None, address: str | None) -> str:
    if address:
        return address
    if latitude is None or longitude is None:
        return "Unknown"
    return f"{latitude:.4f}, {longitude:.4f}"


def format_emergency_sms(
    user_name: str,
    alert_type: str,
    latitude: float | None,
    longitude: float | None,
    address: str | None = None,
    battery_level: int | None = None,
    when: datetime | None = None,
    maps_base_url: str = "https://maps.google.com/?q=",
) -> str:
    label = ALERT_TYPE_LABELS.get(alert_type, "EMERGENCY ALERT")
    user_line, closing = _SMS_VARIANTS.get(alert_type, _DEFAULT_SMS_VARIANT)
    when = when or utcnow()
    battery = f"{battery_level}%" if battery_level is not None else "Unknown"
    lines = [
        f"ALONE ALERT - {label}",
        user_line.format(name=user_name),
        f"Time: {when.strftime('%Y-%m-%d %H:%M UTC')}",
        f"Location: {_format_location(latitude, longitude, address)}",
        f"Battery: {battery}",
    ]
    if latitude is not None and longitude is not None:
        lines.append(f"Map: {maps_base_url}{latitude},{longitude}")
    lines.append(closing)
    return "\n".join(lines)


def shorten_sms(message: str, max_length: int) -> str:
    """Trim an SMS to ``max_length`` keeping alert, user, location and map lines."""
    if len(message) <= max_length:
        return message
    lines = [line for line in message.split("\n") if any(m in line for m in _ESSENTIAL_MARKERS)]
    if len("\n".join(lines)) > max_length:
        lines = [line for line in lines if not line.startswith("Time:")]
    return "\n".join(lines)[:max_length]


def format_trip_reminder(minutes_left: int) -> tuple[str, str]:
    title = "Trip Ending Soon"
    body = (
        f"Your trip ends in {minutes_left} minute{'s' if minutes_left != 1 else ''}. "
        "End your trip or check in, otherwise your emergency contacts will be alerted."
    )
    return title, body


def format_community_push(user_name: str, latitude: float | None, longitude: float | None) -> tuple[str, str]:
    return (
        "Community Help Needed",
        f"{user_name} nearby needs help. Last location: {_format_location(latitude, longitude, None)}",
    )


# ---------------------------------------------------------------------------
# Dispatchers
# ---------------------------------------------------------------------------


class LoggingDispatcher:
    """Logs every message instead of delivering it."""

    provider = "simulated"

    async def send_sms(self, to_phone: str, message: str) -> DeliveryResult:
        logger.info("[simulated sms] to=%s body=%r", to_phone, message[:100])
        return DeliveryResult(
            success=True,
            provider=self.provider,
            message_id=f"simulated_{int(utcnow().timestamp() * 1000)}",
            simulated=True,
        )

    async def send_push(
        self,
        device_token: str,
        title: str,
        body: str,
        data: dict[str, str] | None = None,
    ) -> DeliveryResult:
        logger.info("[simulated push] token=%s title=%r body=%r", device_token[:12], title, body)
        return DeliveryResult(
            success=True,
            provider=self.provider,
            message_id=f"simulated_{int(utcnow().timestamp() * 1000)}",
            simulated=True,
        )


class ProviderDispatcher:
    """Twilio REST SMS and FCM HTTP v1 push over httpx."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self._settings = settings
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._settings.notification_timeout_seconds,
            transport=self._transport,
        )

    async def send_sms(self, to_phone: str, message: str) -> DeliveryResult:
        s = self._settings
        body = shorten_sms(message, s.sms_max_length)
        if body != message:
            logger.info("SMS to %s shortened from %d to %d chars", to_phone, len(message), len(body))
        url = f"{s.twilio_base_url.rstrip('/')}/Accounts/{s.twilio_account_sid}/Messages.json"
        try:
            async with self._client() as client:
                response = await client.post(
                    url,
                    data={"To": to_phone, "From": s.twilio_from_number, "Body": body},
                    auth=(s.twilio_account_sid, s.twilio_auth_token),
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            error = _extract_error_message(exc.response)
            logger.warning("Twilio rejected SMS to %s: %s", to_phone, error)
            return DeliveryResult(success=False, provider="twilio", error=error)
        except httpx.HTTPError as exc:
            logger.warning("Could not reach Twilio for %s: %s", to_phone, exc)
            return DeliveryResult(success=False, provider="twilio", error=str(exc))

        payload: dict[str, Any] = response.json()
        return DeliveryResult(success=True, provider="twilio", message_id=payload.get("sid"))

    async def send_push(
        self,
        device_token: str,
        title: str,
        body: str,
        data: dict[str, str] | None = None,
    ) -> DeliveryResult:
        s = self._settings
        if not s.fcm_project_id or not s.fcm_access_token:
            logger.warning("Push skipped, FCM is not configured")
            return DeliveryResult(success=False, provider="fcm", error="FCM not configured")
        url = f"{s.fcm_base_url.rstrip('/')}/projects/{s.fcm_project_id}/messages:send"
        message = {
            "message": {
                "token": device_token,
                "notification": {"title": title, "body": body},
                "data": data or {},
                "android": {"priority": "high", "notification": {"channel_id": "emergency_alerts"}},
                "apns": {"payload": {"aps": {"sound": "default", "badge": 1}}},
            }
        }
        try:
            async with self._client() as client:
                response = await client.post(
                    url,
                    json=message,
                    headers={"Authorization": f"Bearer {s.fcm_access_token}"},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            error = _extract_error_message(exc.response)
            logger.warning("FCM rejected push: %s", error)
            return DeliveryResult(success=False, provider="fcm", error=error)
        except httpx.HTTPError as exc:
            logger.warning("Could not reach FCM: %s", exc)
            return DeliveryResult(success=False, provider="fcm", error=str(exc))

        payload: dict[str, Any] = response.json()
        return DeliveryResult(success=True, provider="fcm", message_id=payload.get("name"))


def _extract_error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if payload.get("message"):
            return str(payload["message"])
    return f"HTTP {response.status_code}"


def build_dispatcher(settings: Settings) -> NotificationDispatcher:
    """Pick the dispatcher named by ``settings.notification_backend``."""
    backend = settings.notification_backend.strip().lower()
    if backend == "log":
        logger.info("Notifications: logging dispatcher (no real delivery)")
        return LoggingDispatcher()
    if backend == "provider":
        missing = [
            name
            for name in ("twilio_account_sid", "twilio_auth_token", "twilio_from_number")
            if not getattr(settings, name)
        ]
        if missing:
            raise RuntimeError(f"notification_backend=provider requires: {', '.join(missing)}")
        logger.info("Notifications: Twilio SMS + FCM push")
        return ProviderDispatcher(settings)
    raise RuntimeError(f"Unknown notification_backend {settings.notification_backend!r}")
