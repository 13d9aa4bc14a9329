from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class SubscriberPreference(Base):
    """Owned by the account service; the pipeline only reads it."""

    __tablename__ = "subscriber_preferences"
    __table_args__ = (Index("ix_subscriber_preferences_enabled", "notifications_enabled"),)

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    categories: Mapped[list[str]] = mapped_column(JSON, default=list)
    home_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    home_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    notifications_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    device_token: Mapped[str | None] = mapped_column(String(512), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )
