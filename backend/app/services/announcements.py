from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.core.config import Settings
from app.core.timeutils import as_utc, utc_now
from app.models.announcement import (
    Announcement,
    AnnouncementSettings,
    AnnouncementStatus,
    AnnouncementTarget,
)
from app.models.user import User
from app.schemas.announcement import (
    AnnouncementCreate,
    AnnouncementOut,
    AnnouncementUpdate,
    AutoRescheduleOut,
    DeadlineIn,
    DeadlineOut,
    ScheduleAdjustmentOut,
)
from app.services.email import EmailDeliveryError, send_announcement_email
from app.services.recipients import extract_intake_code, resolve_recipient_emails
from app.services.roles import (
    clamp_priority_level,
    has_admin_access,
    is_privileged_scheduler,
    role_to_priority,
)
from app.services.schedule_store import apply_schedule_adjustments, build_slot_resolver
from app.services.slot_resolver import ScheduleResolution

logger = logging.getLogger(__name__)

_CORE_FIELDS = ("title", "description", "category", "is_active", "status", "is_emergency")
_SETTINGS_FIELDS = (
    "expiry_date",
    "reminder_time",
    "priority_until",
    "emergency_expires_at",
    "send_email",
    "email_sent",
    "visible_after",
)


def get_announcement(db: Session, announcement_id: int) -> Announcement | None:
    statement = (
        select(Announcement)
        .where(Announcement.id == announcement_id)
        .options(selectinload(Announcement.settings), selectinload(Announcement.targets))
    )
    return db.execute(statement).scalar_one_or_none()


def list_announcements(db: Session) -> list[Announcement]:
    statement = (
        select(Announcement)
        .options(selectinload(Announcement.settings), selectinload(Announcement.targets))
        .order_by(Announcement.created_at.desc(), Announcement.id.desc())
    )
    return list(db.execute(statement).scalars())


def target_years_of(announcement: Announcement) -> list[int] | None:
    years = sorted({item.target_year for item in announcement.targets if item.target_year is not None})
    return years or None


def announcement_to_out(announcement: Announcement) -> AnnouncementOut:
    settings = announcement.settings
    deadlines = sorted(
        (
            DeadlineOut(label=item.deadline_label or "", date=as_utc(item.deadline_date))
            for item in announcement.targets
            if item.deadline_date is not None
        ),
        key=lambda item: item.date,
    )
    return AnnouncementOut(
        id=announcement.id,
        title=announcement.title,
        description=announcement.description,
        category=announcement.category,
        author_id=announcement.author_id,
        status=announcement.status,
        is_active=announcement.is_active,
        priority_level=announcement.priority_level,
        is_emergency=announcement.is_emergency,
        created_at=as_utc(announcement.created_at),
        updated_at=as_utc(announcement.updated_at),
        expiry_date=as_utc(settings.expiry_date) if settings else None,
        scheduled_at=as_utc(settings.scheduled_at) if settings else None,
        reminder_time=as_utc(settings.reminder_time) if settings else None,
        priority_until=as_utc(settings.priority_until) if settings else None,
        emergency_expires_at=as_utc(settings.emergency_expires_at) if settings else None,
        visible_after=as_utc(settings.visible_after) if settings else None,
        send_email=settings.send_email if settings else False,
        email_sent=settings.email_sent if settings else False,
        reminder_sent=settings.reminder_sent if settings else False,
        target_years=target_years_of(announcement),
        deadlines=deadlines or None,
    )


def auto_reschedule_summary(original: datetime, resolution: ScheduleResolution | None) -> AutoRescheduleOut | None:
    if resolution is None or not resolution.auto_adjusted:
        return None
    return AutoRescheduleOut(
        original=original,
        scheduled_for=resolution.scheduled_at,
        adjustments=[ScheduleAdjustmentOut(id=item.id, new_time=item.new_time) for item in resolution.adjustments],
    )


def resolve_schedule_for_author(
    db: Session,
    settings: Settings,
    *,
    author: User,
    desired_time: datetime,
    priority_level: int,
    exclude_id: int | None = None,
) -> ScheduleResolution:
    resolver = build_slot_resolver(db, settings, exclude_id=exclude_id)
    return resolver.resolve(
        as_utc(desired_time),
        requester_role_priority=role_to_priority(author.role),
        priority_level=priority_level,
        is_privileged_scheduler=is_privileged_scheduler(author.role),
    )


def _deadline_targets(deadlines: Iterable[DeadlineIn] | None) -> list[AnnouncementTarget]:
    return [
        AnnouncementTarget(deadline_date=as_utc(item.date), deadline_label=item.label)
        for item in deadlines or ()
    ]


def _year_targets(target_years: Iterable[int] | None) -> list[AnnouncementTarget]:
    return [AnnouncementTarget(target_year=year) for year in target_years or ()]


def create_announcement(
    db: Session,
    settings: Settings,
    payload: AnnouncementCreate,
    *,
    author: User,
    now: datetime | None = None,
) -> tuple[Announcement, ScheduleResolution | None]:
    """Stage a new announcement and any displaced schedules; the caller commits."""
    now = now or utc_now()
    priority_level = clamp_priority_level(payload.priority_level, author.role)
    expiry_date = as_utc(payload.expiry_date)
    priority_until = as_utc(payload.priority_until)
    emergency_expires_at = as_utc(payload.emergency_expires_at)
    resolution: ScheduleResolution | None = None

    if payload.is_emergency:
        if payload.scheduled_at is not None:
            logger.warning("Emergency announcement cannot be scheduled; clearing scheduled_at")
        status = AnnouncementStatus.active
        is_active = True
        scheduled_at = None
        priority_level = 0
        expiry_date = emergency_expires_at or expiry_date
        priority_until = priority_until or emergency_expires_at
    else:
        scheduled_at = None
        if payload.scheduled_at is not None:
            resolution = resolve_schedule_for_author(
                db,
                settings,
                author=author,
                desired_time=payload.scheduled_at,
                priority_level=priority_level,
            )
            scheduled_at = resolution.scheduled_at
        is_scheduled = scheduled_at is not None and scheduled_at > now
        has_priority_window = priority_until is not None and priority_until > now
        if has_priority_window:
            status = AnnouncementStatus.urgent
        elif is_scheduled:
            status = AnnouncementStatus.scheduled
        else:
            status = payload.status
        is_active = False if is_scheduled else (True if has_priority_window else payload.is_active)

    announcement = Announcement(
        title=payload.title,
        description=payload.description,
        category=payload.category,
        author_id=author.id,
        status=status,
        is_active=is_active,
        priority_level=priority_level,
        is_emergency=payload.is_emergency,
    )
    announcement.settings = AnnouncementSettings(
        expiry_date=expiry_date,
        scheduled_at=scheduled_at,
        reminder_time=as_utc(payload.reminder_time),
        priority_until=priority_until,
        emergency_expires_at=emergency_expires_at,
        send_email=payload.send_email,
        email_sent=False,
        reminder_sent=False,
        visible_after=as_utc(payload.visible_after),
    )
    announcement.targets = _year_targets(payload.target_years) + _deadline_targets(payload.deadlines)
    db.add(announcement)
    db.flush()

    if resolution is not None and resolution.adjustments:
        apply_schedule_adjustments(db, resolution.adjustments, now=now)
    return announcement, resolution


def update_announcement(
    db: Session,
    settings: Settings,
    announcement: Announcement,
    payload: AnnouncementUpdate,
    *,
    editor: User,
    now: datetime | None = None,
) -> ScheduleResolution | None:
    now = now or utc_now()
    changes = payload.model_dump(exclude_unset=True)
    resolution: ScheduleResolution | None = None

    for field_name in _CORE_FIELDS:
        if field_name in changes and changes[field_name] is not None:
            setattr(announcement, field_name, changes[field_name])
    if "priority_level" in changes:
        announcement.priority_level = clamp_priority_level(changes["priority_level"], editor.role)

    if announcement.settings is None:
        announcement.settings = AnnouncementSettings()
    record_settings = announcement.settings
    for field_name in _SETTINGS_FIELDS:
        if field_name not in changes:
            continue
        value = changes[field_name]
        if isinstance(value, datetime):
            value = as_utc(value)
        elif value is None and field_name in ("send_email", "email_sent"):
            value = False
        setattr(record_settings, field_name, value)

    if "scheduled_at" in changes:
        desired = payload.scheduled_at
        if desired is None or announcement.is_emergency:
            record_settings.scheduled_at = None
            if "status" not in changes and announcement.status == AnnouncementStatus.scheduled:
                announcement.status = AnnouncementStatus.active
                announcement.is_active = True
        else:
            resolution = resolve_schedule_for_author(
                db,
                settings,
                author=editor,
                desired_time=desired,
                priority_level=announcement.priority_level,
                exclude_id=announcement.id,
            )
            record_settings.scheduled_at = resolution.scheduled_at
            if (
                "status" not in changes
                and resolution.scheduled_at > now
                and announcement.status == AnnouncementStatus.active
            ):
                announcement.status = AnnouncementStatus.scheduled
                announcement.is_active = False

    if "target_years" in changes:
        announcement.targets = [item for item in announcement.targets if item.target_year is None]
        announcement.targets.extend(_year_targets(payload.target_years))
    if "deadlines" in changes:
        announcement.targets = [item for item in announcement.targets if item.deadline_date is None]
        announcement.targets.extend(_deadline_targets(payload.deadlines))

    announcement.updated_at = now
    db.flush()

    if resolution is not None and resolution.adjustments:
        apply_schedule_adjustments(db, resolution.adjustments, now=now)
    return resolution


def deliver_announcement_email(
    db: Session,
    announcement: Announcement,
    *,
    now: datetime | None = None,
) -> tuple[bool, str | None]:
    """Email recipients now unless the announcement is still waiting for its slot."""
    now = now or utc_now()
    record_settings = announcement.settings
    if record_settings is None or not record_settings.send_email:
        return False, None
    scheduled_at = as_utc(record_settings.scheduled_at)
    if not announcement.is_emergency and scheduled_at is not None and scheduled_at > now:
        return False, "Email will be sent when the announcement is published"

    target_years = target_years_of(announcement)
    recipients = resolve_recipient_emails(db, target_years)
    if not recipients:
        return False, "No recipients matched the selected years"

    try:
        send_announcement_email(
            title=announcement.title,
            description=announcement.description,
            category=announcement.category.value,
            recipient_emails=recipients,
            expiry_date=record_settings.expiry_date,
            scheduled_at=record_settings.scheduled_at,
        )
    except EmailDeliveryError as exc:
        logger.warning("Announcement %s email failed: %s", announcement.id, exc)
        return False, str(exc)

    record_settings.email_sent = True
    return True, f"Email sent successfully to {len(recipients)} recipient(s)"


def is_visible_to_user(announcement: Announcement, user: User | None, *, now: datetime | None = None) -> bool:
    now = now or utc_now()
    privileged = user is not None and has_admin_access(user.role)
    if privileged:
        return True

    record_settings = announcement.settings
    intake_code = extract_intake_code(user.email) if user is not None else None
    target_years = target_years_of(announcement)
    targeted_ok = not target_years or (intake_code is not None and intake_code in target_years)

    if announcement.is_emergency:
        expires_at = as_utc(record_settings.emergency_expires_at) if record_settings else None
        if expires_at is not None and expires_at < now:
            return False
        return targeted_ok

    scheduled_at = as_utc(record_settings.scheduled_at) if record_settings else None
    if scheduled_at is not None and scheduled_at > now:
        return False
    return targeted_ok


def sort_for_display(announcements: Iterable[Announcement]) -> list[Announcement]:
    def created_key(item: Announcement) -> float:
        created = as_utc(item.created_at)
        return created.timestamp() if created is not None else 0.0

    newest_first = sorted(announcements, key=lambda item: (created_key(item), item.id or 0), reverse=True)
    return sorted(newest_first, key=lambda item: (not item.is_emergency, item.priority_level))
