"""User settings model: notification and trigger preferences."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column

from safetrip.db.base import Base


class UserSettings(Base):
    __tablename__ = "user_settings"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    shake_detection: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    voice_commands: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sms_fallback: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    community_help: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    decoy_pin: Mapped[str | None] = mapped_column(String(12), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
