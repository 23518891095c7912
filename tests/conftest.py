"""Pytest fixtures."""

import os

# Point the app at the test database before any safetrip module reads settings
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["NOTIFICATION_BACKEND"] = "log"
os.environ["RESTORE_TIMERS_ON_STARTUP"] = "false"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from safetrip.db.base import Base  # noqa: E402
from safetrip.models import (  # noqa: E402, F401 - register for create_all
    Alert,
    AlertNotification,
    EmergencyContact,
    SafeZone,
    Trip,
    User,
    UserSettings,
)
from safetrip.main import app  # noqa: E402
from safetrip.db.session import get_db  # noqa: E402
from safetrip.services.notifications import DeliveryResult  # noqa: E402

TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


class RecordingDispatcher:
    """Dispatcher double that records every send.

    Numbers in ``fail_numbers`` get a failed result; numbers in ``raise_numbers``
    make ``send_sms`` raise.
    """

    def __init__(self):
        self.sms: list[tuple[str, str]] = []
        self.pushes: list[tuple[str, str, str, dict]] = []
        self.fail_numbers: set[str] = set()
        self.raise_numbers: set[str] = set()

    async def send_sms(self, to_phone: str, message: str) -> DeliveryResult:
        self.sms.append((to_phone, message))
        if to_phone in self.raise_numbers:
            raise ConnectionError("provider unreachable")
        if to_phone in self.fail_numbers:
            return DeliveryResult(success=False, provider="twilio", error="Invalid 'To' phone number")
        return DeliveryResult(success=True, provider="twilio", message_id=f"SM{len(self.sms):032d}")

    async def send_push(self, device_token, title, body, data=None) -> DeliveryResult:
        self.pushes.append((device_token, title, body, data or {}))
        return DeliveryResult(success=True, provider="fcm", message_id=f"projects/test/messages/{len(self.pushes)}")


@pytest.fixture(scope="session")
def setup_db():
    """Create tables once for test session."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(setup_db):
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def recorder():
    return RecordingDispatcher()


@pytest.fixture
def client(setup_db, recorder):
    """Test client with overridden DB and a recording notification dispatcher."""
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        app.state.dispatcher = recorder
        app.state.trip_timers.dispatcher = recorder
        yield c
    app.dependency_overrides.clear()
