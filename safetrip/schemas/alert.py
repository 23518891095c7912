"""Alert schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from safetrip.schemas.common import GeoPoint

ManualAlertType = Literal["sos", "shake_trigger", "voice_trigger", "duress_pin"]


class SosRequest(BaseModel):
    trip_id: int | None = None
    type: ManualAlertType = "sos"
    location: GeoPoint | None = None
    battery_level: int | None = Field(default=None, ge=0, le=100)


class MissedCheckinRequest(BaseModel):
    trip_id: int


class NotificationSentResponse(BaseModel):
    contact: str
    method: str
    sent_at: datetime
    status: str
    provider: str
    sid: str | None
    note: str | None

    model_config = {"from_attributes": True}


class AlertLocation(BaseModel):
    latitude: float | None
    longitude: float | None
    address: str | None = None
    accuracy: float | None = None
    timestamp: datetime | None = None


class AlertResponse(BaseModel):
    id: int
    trip_id: int | None
    user_id: int
    type: str
    severity: str
    message: str
    location: AlertLocation | None
    battery_level: int | None
    is_resolved: bool
    resolved_at: datetime | None
    community_notified: bool
    notifications_sent: list[NotificationSentResponse]
    created_at: datetime


class SosResponse(BaseModel):
    alert: AlertResponse
    message: str


class MissedCheckinResponse(BaseModel):
    alert: AlertResponse | None
    message: str


class AlertListResponse(BaseModel):
    alerts: list[AlertResponse]
    total: int
    total_pages: int
    current_page: int


class AlertStatsResponse(BaseModel):
    total: int
    resolved: int
    critical: int
    recent: int
    by_type: dict[str, int]
