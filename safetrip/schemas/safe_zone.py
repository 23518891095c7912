"""Safe zone schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from safetrip.core.trip_policies import DEFAULT_SAFE_ZONE_RADIUS_M, MAX_SAFE_ZONE_RADIUS_M, MIN_SAFE_ZONE_RADIUS_M

ZoneType = Literal["home", "work", "school", "other"]


class SafeZoneCreate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    radius: int = Field(default=DEFAULT_SAFE_ZONE_RADIUS_M, ge=MIN_SAFE_ZONE_RADIUS_M, le=MAX_SAFE_ZONE_RADIUS_M)
    address: str | None = Field(default=None, max_length=500)
    type: ZoneType = "other"


class SafeZoneUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    radius: int | None = Field(default=None, ge=MIN_SAFE_ZONE_RADIUS_M, le=MAX_SAFE_ZONE_RADIUS_M)
    address: str | None = Field(default=None, max_length=500)
    type: ZoneType | None = None
    is_active: bool | None = None


class SafeZoneResponse(BaseModel):
    id: int
    name: str
    latitude: float
    longitude: float
    radius: int
    address: str | None
    type: str
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class SafetyCheckRequest(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class ZoneSummary(BaseModel):
    id: int
    name: str
    type: str
    radius: int


class ZoneSafetyResult(BaseModel):
    safe_zone: ZoneSummary
    is_within: bool
    distance: int
    safety_status: str


class NearestZone(BaseModel):
    name: str
    distance: int
    type: str


class SafetyCheckResponse(BaseModel):
    is_safe: bool
    total_zones_checked: int
    in_safe_zones: int
    nearest_safe_zone: NearestZone | None
    results: list[ZoneSafetyResult]
