"""Auth schemas."""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator

from safetrip.schemas.common import is_plausible_phone


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    name: str = Field(min_length=2, max_length=120)
    phone: str

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        if not is_plausible_phone(v):
            raise ValueError("Please include a valid phone number")
        return v


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserMe(BaseModel):
    id: int
    email: str
    name: str
    phone: str
    is_active: bool
    battery_level: int | None = None
    latitude: float | None = None
    longitude: float | None = None
    location_updated_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
