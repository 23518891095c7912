"""Trip schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from safetrip.core.trip_policies import (
    DEFAULT_REMINDER_MINUTES,
    MAX_REMINDER_MINUTES,
    MAX_TRIP_DURATION_MIN,
    MIN_REMINDER_MINUTES,
    MIN_TRIP_DURATION_MIN,
)
from safetrip.schemas.common import GeoPoint, Place


class TripStartRequest(BaseModel):
    start_location: Place
    end_location: Place
    duration: int = Field(ge=MIN_TRIP_DURATION_MIN, le=MAX_TRIP_DURATION_MIN, description="Planned minutes")
    reminder_minutes: int = Field(
        default=DEFAULT_REMINDER_MINUTES,
        ge=MIN_REMINDER_MINUTES,
        le=MAX_REMINDER_MINUTES,
        description="Minutes before the trip end to send a reminder",
    )


class TripCheckInRequest(BaseModel):
    trip_id: int
    location: GeoPoint
    battery_level: int | None = Field(default=None, ge=0, le=100)


class TripLocationRequest(TripCheckInRequest):
    pass


class TripIdRequest(BaseModel):
    trip_id: int


class TripDuration(BaseModel):
    planned: int
    actual: int | None


class CheckInTimer(BaseModel):
    next_check_in: datetime
    interval: int
    last_check_in: datetime | None


class CurrentLocation(BaseModel):
    latitude: float
    longitude: float
    battery_level: int | None
    timestamp: datetime | None


class TripResponse(BaseModel):
    id: int
    user_id: int
    status: str
    start_location: Place
    end_location: Place
    duration: TripDuration
    reminder_minutes: int
    trip_end_time: datetime
    reminder_time: datetime
    check_in_timer: CheckInTimer
    current_location: CurrentLocation | None
    alerts: list[int]
    created_at: datetime
    completed_at: datetime | None


class CheckInResponse(BaseModel):
    message: str
    next_check_in: datetime


class TripStatusResponse(BaseModel):
    id: int
    status: str
    created_at: datetime
    trip_end_time: datetime
    reminder_time: datetime
    time_remaining: int
    current_location: CurrentLocation | None


class TripHistoryResponse(BaseModel):
    trips: list[TripResponse]
    total: int
    total_pages: int
    current_page: int


class TripStatsResponse(BaseModel):
    total_trips: int
    completed_trips: int
    alerted_trips: int
    active_trips: int
    cancelled_trips: int
    completion_rate: float
    average_duration: int
    total_travel_time: int
    alert_types: dict[str, int]


class TripExportRow(BaseModel):
    """One flattened trip. Missing values are spelled out rather than null."""

    trip_id: int
    start_location: str
    end_location: str
    planned_duration_min: int
    actual_duration_min: int
    status: str
    start_time: datetime
    end_time: datetime | str
    alerts_count: int
    last_location: str


class TripExportResponse(BaseModel):
    data: list[TripExportRow]
    format: str = "JSON"
    total: int
