"""Trip model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from safetrip.db.base import Base

TRIP_ACTIVE = "active"
TRIP_COMPLETED = "completed"
TRIP_CANCELLED = "cancelled"
TRIP_ALERTED = "alerted"
TRIP_STATUSES = (TRIP_ACTIVE, TRIP_COMPLETED, TRIP_CANCELLED, TRIP_ALERTED)


class Trip(Base):
    """Time-boxed journey monitored by reminder/expiry timers.

    Location and check-in timer sub-documents are flattened into columns.
    """

    __tablename__ = "trips"
    __table_args__ = (Index("ix_trips_user_status", "user_id", "status"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=TRIP_ACTIVE)  # active | completed | cancelled | alerted

    start_latitude: Mapped[float] = mapped_column(Float, nullable=False)
    start_longitude: Mapped[float] = mapped_column(Float, nullable=False)
    start_address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    end_latitude: Mapped[float] = mapped_column(Float, nullable=False)
    end_longitude: Mapped[float] = mapped_column(Float, nullable=False)
    end_address: Mapped[str | None] = mapped_column(String(500), nullable=True)

    planned_duration_min: Mapped[int] = mapped_column(Integer, nullable=False)
    actual_duration_min: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reminder_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    trip_end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reminder_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    checkin_interval_min: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    next_checkin_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_checkin_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    current_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    current_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    current_battery_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    current_location_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
