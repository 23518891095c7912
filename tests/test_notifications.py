"""Message formatting and dispatcher tests."""

import asyncio
from datetime import datetime, timezone

import httpx
import pytest

from safetrip.core.config import Settings
from safetrip.services.notifications import (
    LoggingDispatcher,
    ProviderDispatcher,
    build_dispatcher,
    format_emergency_sms,
    format_trip_reminder,
    shorten_sms,
)


def _settings(**overrides):
    values = {
        "notification_backend": "provider",
        "twilio_account_sid": "AC123",
        "twilio_auth_token": "secret",
        "twilio_from_number": "+15550009999",
        "sms_max_length": 300,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_emergency_sms_layout():
    message = format_emergency_sms(
        user_name="Asha",
        alert_type="checkin_missed",
        latitude=12.9716,
        longitude=77.5946,
        battery_level=15,
        when=datetime(2024, 5, 1, 18, 30, tzinfo=timezone.utc),
    )
    lines = message.split("\n")
    assert lines[0] == "ALONE ALERT - MISSED CHECK-IN"
    assert "User: Asha" in lines
    assert "Time: 2024-05-01 18:30 UTC" in lines
    assert "Location: 12.9716, 77.5946" in lines
    assert "Battery: 15%" in lines
    assert "Map: https://maps.google.com/?q=12.9716,77.5946" in lines
    assert lines[-1] == "Check on them immediately."


def test_emergency_sms_wording_depends_on_alert_type():
    sos = format_emergency_sms(user_name="Asha", alert_type="sos", latitude=12.9716, longitude=77.5946).split("\n")
    assert "User: Asha needs help!" in sos
    assert sos[-1] == "URGENT: Check immediately!"

    other = format_emergency_sms(user_name="Asha", alert_type="battery_low", latitude=None, longitude=None).split("\n")
    assert other[0] == "ALONE ALERT - LOW BATTERY"
    assert "User: Asha" in other
    assert other[-1] == "Please check on them."


def test_emergency_sms_without_location():
    message = format_emergency_sms(user_name="Asha", alert_type="mystery", latitude=None, longitude=None)
    assert message.startswith("ALONE ALERT - EMERGENCY ALERT")
    assert "Location: Unknown" in message
    assert "Battery: Unknown" in message
    assert "Map:" not in message


def test_shorten_sms_keeps_essential_lines():
    message = format_emergency_sms(
        user_name="A" * 120,
        alert_type="sos",
        latitude=12.9716,
        longitude=77.5946,
        address="Flat 4, " + "Long Street Name " * 8,
    )
    assert len(message) > 300
    short = shorten_sms(message, 300)
    assert len(short) <= 300
    assert short.startswith("ALONE ALERT - SOS EMERGENCY")
    assert "Battery:" not in short
    assert "URGENT" not in short
    assert shorten_sms("short message", 300) == "short message"


def test_trip_reminder_text():
    title, body = format_trip_reminder(1)
    assert title == "Trip Ending Soon"
    assert "1 minute." in body
    assert "5 minutes." in format_trip_reminder(5)[1]


def test_logging_dispatcher_simulates_delivery():
    dispatcher = LoggingDispatcher()
    sms = asyncio.run(dispatcher.send_sms("+15550001111", "hello"))
    push = asyncio.run(dispatcher.send_push("token-abc", "Title", "Body"))
    assert sms.success and sms.simulated
    assert sms.message_id.startswith("simulated_")
    assert push.success and push.provider == "simulated"


def test_provider_sms_success():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = request.content.decode()
        seen["auth"] = request.headers["authorization"]
        return httpx.Response(201, json={"sid": "SM0001", "status": "queued"})

    dispatcher = ProviderDispatcher(_settings(), transport=httpx.MockTransport(handler))
    result = asyncio.run(dispatcher.send_sms("+15550001111", "Help"))

    assert result.success is True
    assert result.provider == "twilio"
    assert result.message_id == "SM0001"
    assert seen["url"] == "https://api.twilio.com/2010-04-01/Accounts/AC123/Messages.json"
    assert "To=%2B15550001111" in seen["body"]
    assert "From=%2B15550009999" in seen["body"]
    assert seen["auth"].startswith("Basic ")


def test_provider_sms_rejected():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"code": 21211, "message": "Invalid 'To' Phone Number"})

    dispatcher = ProviderDispatcher(_settings(), transport=httpx.MockTransport(handler))
    result = asyncio.run(dispatcher.send_sms("+1", "Help"))
    assert result.success is False
    assert result.error == "Invalid 'To' Phone Number"


def test_provider_sms_unreachable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    dispatcher = ProviderDispatcher(_settings(), transport=httpx.MockTransport(handler))
    result = asyncio.run(dispatcher.send_sms("+15550001111", "Help"))
    assert result.success is False
    assert "connection refused" in result.error


def test_provider_sms_is_shortened():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(request.content.decode())
        return httpx.Response(201, json={"sid": "SM0002"})

    dispatcher = ProviderDispatcher(_settings(sms_max_length=40), transport=httpx.MockTransport(handler))
    message = "ALONE ALERT - SOS EMERGENCY\nBattery: 5%\nMap: https://maps.google.com/?q=1,2"
    asyncio.run(dispatcher.send_sms("+15550001111", message))
    assert "Battery" not in bodies[0]


def test_push_requires_fcm_configuration():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    dispatcher = ProviderDispatcher(_settings(), transport=httpx.MockTransport(handler))
    result = asyncio.run(dispatcher.send_push("token", "Title", "Body"))
    assert result.success is False
    assert result.error == "FCM not configured"


def test_push_success():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        return httpx.Response(200, json={"name": "projects/p1/messages/42"})

    settings = _settings(fcm_project_id="p1", fcm_access_token="ya29.token")
    dispatcher = ProviderDispatcher(settings, transport=httpx.MockTransport(handler))
    result = asyncio.run(dispatcher.send_push("token", "Title", "Body", {"type": "trip_reminder"}))
    assert result.success is True
    assert result.message_id == "projects/p1/messages/42"
    assert seen["url"] == "https://fcm.googleapis.com/v1/projects/p1/messages:send"
    assert seen["auth"] == "Bearer ya29.token"


def test_build_dispatcher():
    assert isinstance(build_dispatcher(_settings(notification_backend="log")), LoggingDispatcher)
    assert isinstance(build_dispatcher(_settings()), ProviderDispatcher)

    with pytest.raises(RuntimeError, match="twilio_auth_token"):
        build_dispatcher(_settings(twilio_auth_token=""))
    with pytest.raises(RuntimeError, match="Unknown notification_backend"):
        build_dispatcher(_settings(notification_backend="pigeon"))
