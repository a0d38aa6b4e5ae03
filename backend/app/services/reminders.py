from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.exceptions import StorageError
from app.core.timeutils import as_utc, utc_now
from app.models.announcement import (
    LIVE_STATUSES,
    Announcement,
    AnnouncementSettings,
    AnnouncementStatus,
)
from app.services.announcements import deliver_announcement_email, target_years_of
from app.services.email import EmailDeliveryError, send_reminder_email
from app.services.recipients import resolve_recipient_emails

logger = logging.getLogger(__name__)


@dataclass
class ReminderResults:
    processed: int = 0
    sent: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class SchedulerRunSummary:
    timestamp: datetime
    published: int = 0
    emails_retried: int = 0
    expired: int = 0
    reminders: ReminderResults = field(default_factory=ReminderResults)


def _with_settings():
    return (
        select(Announcement)
        .join(AnnouncementSettings, AnnouncementSettings.announcement_id == Announcement.id)
        .options(selectinload(Announcement.settings), selectinload(Announcement.targets))
    )


def publish_due_announcements(db: Session, now: datetime) -> int:
    statement = (
        _with_settings()
        .where(
            Announcement.status == AnnouncementStatus.scheduled,
            AnnouncementSettings.scheduled_at.is_not(None),
            AnnouncementSettings.scheduled_at <= now,
        )
        .order_by(AnnouncementSettings.scheduled_at.asc())
    )
    due = list(db.execute(statement).scalars())
    for announcement in due:
        announcement.status = AnnouncementStatus.active
        announcement.is_active = True
        announcement.updated_at = now
        if announcement.settings.send_email and not announcement.settings.email_sent:
            sent, message = deliver_announcement_email(db, announcement, now=now)
            if not sent:
                logger.info("Announcement %s published without email: %s", announcement.id, message)
    if due:
        logger.info("Published %d scheduled announcement(s)", len(due))
    return len(due)


def retry_publication_emails(db: Session, now: datetime) -> int:
    """Resend announcement emails that failed when the announcement went live."""
    statement = (
        _with_settings()
        .where(
            Announcement.status == AnnouncementStatus.active,
            Announcement.is_active.is_(True),
            AnnouncementSettings.send_email.is_(True),
            AnnouncementSettings.email_sent.is_(False),
            or_(AnnouncementSettings.scheduled_at.is_(None), AnnouncementSettings.scheduled_at <= now),
        )
        .order_by(Announcement.id.asc())
    )
    sent = 0
    for announcement in db.execute(statement).scalars():
        delivered, message = deliver_announcement_email(db, announcement, now=now)
        if delivered:
            sent += 1
        else:
            logger.info("Announcement %s email retry failed: %s", announcement.id, message)
    return sent


def expire_announcements(db: Session, now: datetime) -> int:
    statement = _with_settings().where(
        Announcement.status.in_((*LIVE_STATUSES, AnnouncementStatus.urgent)),
        or_(
            and_(Announcement.is_emergency.is_(False), AnnouncementSettings.expiry_date <= now),
            and_(Announcement.is_emergency.is_(True), AnnouncementSettings.emergency_expires_at <= now),
        ),
    )
    stale = list(db.execute(statement).scalars())
    for announcement in stale:
        announcement.status = AnnouncementStatus.expired
        announcement.is_active = False
        announcement.updated_at = now
    if stale:
        logger.info("Expired %d announcement(s)", len(stale))
    return len(stale)


def process_reminder_emails(db: Session, now: datetime) -> ReminderResults:
    results = ReminderResults()
    statement = (
        _with_settings()
        .where(
            AnnouncementSettings.reminder_time.is_not(None),
            AnnouncementSettings.reminder_time <= now,
            AnnouncementSettings.reminder_sent.is_(False),
            AnnouncementSettings.send_email.is_(True),
            Announcement.is_active.is_(True),
            Announcement.status != AnnouncementStatus.expired,
        )
        .order_by(AnnouncementSettings.reminder_time.asc())
    )
    pending = list(db.execute(statement).scalars())
    logger.info("Found %d announcement(s) needing reminder emails", len(pending))

    for announcement in pending:
        results.processed += 1
        recipients = resolve_recipient_emails(db, target_years_of(announcement))
        if not recipients:
            logger.warning("No recipients found for announcement %s reminder", announcement.id)
            announcement.settings.reminder_sent = True
            continue
        try:
            send_reminder_email(
                title=announcement.title,
                description=announcement.description,
                category=announcement.category.value,
                recipient_emails=recipients,
                reminder_time=announcement.settings.reminder_time,
            )
        except EmailDeliveryError as exc:
            results.failed += 1
            results.errors.append(f"Announcement {announcement.id}: {exc}")
            continue
        announcement.settings.reminder_sent = True
        results.sent += 1
        logger.info("Reminder sent for announcement %s to %d recipient(s)", announcement.id, len(recipients))
    return results


def run_scheduler(db: Session, now: datetime | None = None) -> SchedulerRunSummary:
    """Retry failed publication emails, publish due announcements, expire stale ones and send reminders.

    The caller commits.
    """
    now = as_utc(now) if now is not None else utc_now()
    summary = SchedulerRunSummary(timestamp=now)
    try:
        summary.emails_retried = retry_publication_emails(db, now)
        summary.published = publish_due_announcements(db, now)
        summary.expired = expire_announcements(db, now)
        db.flush()
        summary.reminders = process_reminder_emails(db, now)
        db.flush()
    except SQLAlchemyError as exc:
        logger.exception("Scheduler run failed")
        raise StorageError() from exc
    return summary
