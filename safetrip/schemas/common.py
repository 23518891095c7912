"""Shared geographic payloads and field checks."""

import re
from datetime import datetime

from pydantic import BaseModel, Field

_PHONE_RE = re.compile(r"^\+?[0-9][0-9\s\-().]{5,19}$")


def is_plausible_phone(value: str) -> bool:
    """Loose check for a dialable mobile number (digits, spaces, dashes, optional +)."""
    digits = re.sub(r"\D", "", value)
    return bool(_PHONE_RE.match(value.strip())) and 7 <= len(digits) <= 15


class GeoPoint(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: float | None = Field(default=None, ge=0)
    timestamp: datetime | None = None


class Place(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    address: str | None = Field(default=None, max_length=500)
