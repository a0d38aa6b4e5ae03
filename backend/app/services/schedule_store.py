from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.exceptions import StorageError
from app.core.timeutils import as_utc, utc_now
from app.models.announcement import LIVE_STATUSES, Announcement, AnnouncementSettings
from app.models.user import User
from app.services.priority_orderer import ConflictRecord, ScheduleAdjustment
from app.services.roles import role_to_priority
from app.services.slot_resolver import SlotResolver

logger = logging.getLogger(__name__)


def find_schedule_conflicts(
    db: Session,
    start: datetime,
    end: datetime,
    *,
    exclude_id: int | None = None,
    lock_rows: bool = False,
) -> list[ConflictRecord]:
    statement = (
        select(
            Announcement.id,
            Announcement.title,
            Announcement.priority_level,
            AnnouncementSettings.scheduled_at,
            User.role,
        )
        .join(AnnouncementSettings, AnnouncementSettings.announcement_id == Announcement.id)
        .outerjoin(User, User.id == Announcement.author_id)
        .where(
            AnnouncementSettings.scheduled_at.is_not(None),
            AnnouncementSettings.scheduled_at >= as_utc(start),
            AnnouncementSettings.scheduled_at < as_utc(end),
            Announcement.status.in_(LIVE_STATUSES),
        )
        .order_by(AnnouncementSettings.scheduled_at.asc(), Announcement.id.asc())
    )
    if exclude_id is not None:
        statement = statement.where(Announcement.id != exclude_id)
    if lock_rows:
        # Ignored by dialects without FOR UPDATE (SQLite).
        statement = statement.with_for_update(of=[Announcement, AnnouncementSettings])

    try:
        rows = db.execute(statement).all()
    except SQLAlchemyError as exc:
        logger.exception("Schedule conflict lookup failed for window %s - %s", start, end)
        raise StorageError() from exc

    return [
        ConflictRecord(
            id=row.id,
            title=row.title,
            priority_level=row.priority_level,
            scheduled_at=as_utc(row.scheduled_at),
            author_role=row.role.value if row.role is not None else None,
        )
        for row in rows
    ]


def apply_schedule_adjustments(
    db: Session,
    adjustments: Iterable[ScheduleAdjustment],
    *,
    now: datetime | None = None,
) -> int:
    """Stage the new slot of every displaced announcement; the caller commits."""
    touched_at = now or utc_now()
    applied = 0
    try:
        for adjustment in adjustments:
            settings = db.get(AnnouncementSettings, adjustment.id)
            if settings is None:
                db.add(AnnouncementSettings(announcement_id=adjustment.id, scheduled_at=adjustment.new_time))
            else:
                settings.scheduled_at = adjustment.new_time
            announcement = db.get(Announcement, adjustment.id)
            if announcement is not None:
                announcement.updated_at = touched_at
            applied += 1
        db.flush()
    except SQLAlchemyError as exc:
        logger.exception("Unable to stage %d schedule adjustment(s)", applied)
        raise StorageError() from exc

    if applied:
        logger.info("Staged %d schedule adjustment(s)", applied)
    return applied


def build_slot_resolver(db: Session, settings: Settings, *, exclude_id: int | None = None) -> SlotResolver:
    lock_rows = settings.schedule_lock_conflict_rows

    def probe(start: datetime, end: datetime) -> list[ConflictRecord]:
        return find_schedule_conflicts(db, start, end, exclude_id=exclude_id, lock_rows=lock_rows)

    return SlotResolver(
        probe,
        slot_interval=timedelta(minutes=settings.schedule_slot_minutes),
        max_iterations=settings.schedule_max_search_slots,
        role_priority=role_to_priority,
    )
