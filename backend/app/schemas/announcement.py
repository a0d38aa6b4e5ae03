from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from app.models.announcement import AnnouncementCategory, AnnouncementStatus


def _normalize_target_years(value: list[int | str] | None) -> list[int] | None:
    if not value:
        return None
    years: set[int] = set()
    for entry in value:
        if isinstance(entry, bool):
            continue
        if isinstance(entry, str):
            entry = entry.strip()
            if not entry.isdigit():
                continue
            entry = int(entry)
        if isinstance(entry, int) and 1 <= entry <= 99:
            years.add(entry)
    return sorted(years) or None


class DeadlineIn(BaseModel):
    label: str = Field(max_length=200)
    date: datetime

    @field_validator("label")
    @classmethod
    def normalize_label(cls, value: str) -> str:
        return value.strip()


class DeadlineOut(BaseModel):
    label: str
    date: datetime


def _normalize_deadlines(value: list[DeadlineIn] | None) -> list[DeadlineIn] | None:
    if not value:
        return None
    kept = sorted((item for item in value if item.label), key=lambda item: item.date)
    return kept or None


class AnnouncementCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1, max_length=20000)
    category: AnnouncementCategory
    expiry_date: datetime | None = None
    deadlines: list[DeadlineIn] | None = None
    scheduled_at: datetime | None = None
    reminder_time: datetime | None = None
    priority_until: datetime | None = None
    priority_level: int | None = 3
    is_active: bool = True
    status: AnnouncementStatus = AnnouncementStatus.active
    send_email: bool = False
    target_years: list[int] | None = None
    is_emergency: bool = False
    emergency_expires_at: datetime | None = None
    visible_after: datetime | None = None

    @field_validator("title", "description")
    @classmethod
    def normalize_text(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Field cannot be empty")
        return cleaned

    @field_validator("target_years", mode="before")
    @classmethod
    def normalize_target_years(cls, value):
        return _normalize_target_years(value)

    @field_validator("deadlines")
    @classmethod
    def normalize_deadlines(cls, value: list[DeadlineIn] | None) -> list[DeadlineIn] | None:
        return _normalize_deadlines(value)


class AnnouncementUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, min_length=1, max_length=20000)
    category: AnnouncementCategory | None = None
    is_active: bool | None = None
    status: AnnouncementStatus | None = None
    priority_level: int | None = None
    is_emergency: bool | None = None
    expiry_date: datetime | None = None
    scheduled_at: datetime | None = None
    reminder_time: datetime | None = None
    priority_until: datetime | None = None
    emergency_expires_at: datetime | None = None
    send_email: bool | None = None
    email_sent: bool | None = None
    visible_after: datetime | None = None
    target_years: list[int] | None = None
    deadlines: list[DeadlineIn] | None = None

    @field_validator("title", "description")
    @classmethod
    def normalize_text(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Field cannot be empty")
        return cleaned

    @field_validator("target_years", mode="before")
    @classmethod
    def normalize_target_years(cls, value):
        return _normalize_target_years(value)

    @field_validator("deadlines")
    @classmethod
    def normalize_deadlines(cls, value: list[DeadlineIn] | None) -> list[DeadlineIn] | None:
        return _normalize_deadlines(value)


class AnnouncementOut(BaseModel):
    id: int
    title: str
    description: str
    category: AnnouncementCategory
    author_id: str | None
    status: AnnouncementStatus
    is_active: bool
    priority_level: int
    is_emergency: bool
    created_at: datetime | None
    updated_at: datetime | None
    expiry_date: datetime | None = None
    scheduled_at: datetime | None = None
    reminder_time: datetime | None = None
    priority_until: datetime | None = None
    emergency_expires_at: datetime | None = None
    visible_after: datetime | None = None
    send_email: bool = False
    email_sent: bool = False
    reminder_sent: bool = False
    target_years: list[int] | None = None
    deadlines: list[DeadlineOut] | None = None


class ScheduleAdjustmentOut(BaseModel):
    id: int
    new_time: datetime

    model_config = {"from_attributes": True}


class AutoRescheduleOut(BaseModel):
    original: datetime
    scheduled_for: datetime | None
    adjustments: list[ScheduleAdjustmentOut] = Field(default_factory=list)


class AnnouncementCreateResult(BaseModel):
    announcement: AnnouncementOut
    email_sent: bool = False
    email_message: str | None = None
    auto_rescheduled: AutoRescheduleOut | None = None


class AnnouncementUpdateResult(BaseModel):
    announcement: AnnouncementOut
    auto_rescheduled: AutoRescheduleOut | None = None
