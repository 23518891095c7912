"""Profile, settings and emergency contact schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from safetrip.schemas.common import is_plausible_phone

Relationship = Literal["family", "friend", "colleague", "neighbor", "other"]


class ProfileUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=120)
    phone: str | None = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str | None) -> str | None:
        if v is not None and not is_plausible_phone(v):
            raise ValueError("Please include a valid phone number")
        return v


class UserSettingsUpdate(BaseModel):
    shake_detection: bool | None = None
    voice_commands: bool | None = None
    sms_fallback: bool | None = None
    community_help: bool | None = None
    decoy_pin: str | None = Field(default=None, pattern=r"^\d{4,12}$")


class UserSettingsResponse(BaseModel):
    user_id: int
    shake_detection: bool
    voice_commands: bool
    sms_fallback: bool
    community_help: bool
    updated_at: datetime

    model_config = {"from_attributes": True}


class ContactCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    phone: str
    email: str | None = Field(default=None, max_length=255)
    relationship: Relationship = "friend"
    is_primary: bool = False

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        if not is_plausible_phone(v):
            raise ValueError("Please include a valid phone number")
        return v


class ContactUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    phone: str | None = None
    email: str | None = Field(default=None, max_length=255)
    relationship: Relationship | None = None
    is_primary: bool | None = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str | None) -> str | None:
        if v is not None and not is_plausible_phone(v):
            raise ValueError("Please include a valid phone number")
        return v


class ContactResponse(BaseModel):
    id: int
    name: str
    phone: str | None
    email: str | None
    relationship: str
    is_primary: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class FcmTokenUpdate(BaseModel):
    fcm_token: str = Field(min_length=1, max_length=512)


class LocationUpdate(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    battery_level: int | None = Field(default=None, ge=0, le=100)
