from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.db.base import Base


class AnnouncementStatus(str, Enum):
    scheduled = "scheduled"
    active = "active"
    urgent = "urgent"
    expired = "expired"


class AnnouncementCategory(str, Enum):
    academic = "academic"
    sil = "sil"
    club = "club"
    general = "general"


# Statuses that still occupy a slot on the publishing timeline.
LIVE_STATUSES = (AnnouncementStatus.scheduled, AnnouncementStatus.active)


class Announcement(Base):
    __tablename__ = "announcements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[AnnouncementCategory] = mapped_column(
        SAEnum(AnnouncementCategory, name="announcement_category"),
        nullable=False,
    )
    author_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    status: Mapped[AnnouncementStatus] = mapped_column(
        SAEnum(AnnouncementStatus, name="announcement_status"),
        nullable=False,
        default=AnnouncementStatus.active,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    priority_level: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    is_emergency: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    settings: Mapped[Optional["AnnouncementSettings"]] = relationship(
        back_populates="announcement",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    targets: Mapped[list["AnnouncementTarget"]] = relationship(
        back_populates="announcement",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="AnnouncementTarget.id",
    )


class AnnouncementSettings(Base):
    __tablename__ = "announcement_settings"

    announcement_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("announcements.id", ondelete="CASCADE"),
        primary_key=True,
    )
    expiry_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    reminder_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    priority_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    emergency_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    send_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reminder_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    visible_after: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    announcement: Mapped[Announcement] = relationship(back_populates="settings")


class AnnouncementTarget(Base):
    __tablename__ = "announcement_targets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    announcement_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("announcements.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    target_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    deadline_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deadline_label: Mapped[str | None] = mapped_column(Text, nullable=True)

    announcement: Mapped[Announcement] = relationship(back_populates="targets")
