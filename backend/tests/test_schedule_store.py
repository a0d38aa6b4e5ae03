from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from app.core.config import Settings
from app.core.exceptions import StorageError
from app.models.announcement import (
    Announcement,
    AnnouncementCategory,
    AnnouncementSettings,
    AnnouncementStatus,
)
from app.models.user import User, UserRole
from app.services.priority_orderer import ScheduleAdjustment
from app.services.schedule_store import (
    apply_schedule_adjustments,
    build_slot_resolver,
    find_schedule_conflicts,
)

T = datetime(2030, 1, 15, 9, 0, tzinfo=timezone.utc)


def add_user(db, email, role):
    user = User(name=email.split("@")[0], email=email, hashed_password="x", role=role)
    db.add(user)
    db.flush()
    return user


def add_scheduled(db, *, title, scheduled_at, author=None, priority_level=3, status=AnnouncementStatus.scheduled):
    announcement = Announcement(
        title=title,
        description=f"{title} body",
        category=AnnouncementCategory.general,
        author_id=author.id if author else None,
        status=status,
        is_active=status != AnnouncementStatus.scheduled,
        priority_level=priority_level,
    )
    announcement.settings = AnnouncementSettings(scheduled_at=scheduled_at)
    db.add(announcement)
    db.flush()
    return announcement


def test_conflicts_are_live_items_inside_half_open_window(db_session):
    admin = add_user(db_session, "admin@uni.edu", UserRole.admin)
    first = add_scheduled(db_session, title="Inside", scheduled_at=T + timedelta(minutes=2), author=admin, priority_level=1)
    add_scheduled(db_session, title="At end", scheduled_at=T + timedelta(minutes=5))
    add_scheduled(db_session, title="Expired", scheduled_at=T, status=AnnouncementStatus.expired)
    active = add_scheduled(db_session, title="Active", scheduled_at=T, status=AnnouncementStatus.active)
    db_session.commit()

    conflicts = find_schedule_conflicts(db_session, T, T + timedelta(minutes=5))

    assert [item.id for item in conflicts] == [active.id, first.id]
    inside = conflicts[1]
    assert inside.priority_level == 1
    assert inside.author_role == "admin"
    assert inside.scheduled_at == T + timedelta(minutes=2)
    assert inside.scheduled_at.tzinfo is not None
    assert conflicts[0].author_role is None


def test_conflict_lookup_can_exclude_the_edited_item(db_session):
    item = add_scheduled(db_session, title="Self", scheduled_at=T)
    db_session.commit()

    assert find_schedule_conflicts(db_session, T, T + timedelta(minutes=5), exclude_id=item.id) == []
    assert len(find_schedule_conflicts(db_session, T, T + timedelta(minutes=5), lock_rows=True)) == 1


def test_apply_adjustments_moves_items_and_touches_updated_at(db_session):
    item = add_scheduled(db_session, title="Moved", scheduled_at=T)
    db_session.commit()
    now = datetime(2030, 1, 14, 8, 0, tzinfo=timezone.utc)

    applied = apply_schedule_adjustments(
        db_session,
        [ScheduleAdjustment(id=item.id, new_time=T + timedelta(minutes=5))],
        now=now,
    )
    db_session.commit()
    db_session.expire_all()

    assert applied == 1
    refreshed = db_session.get(Announcement, item.id)
    assert refreshed.settings.scheduled_at.replace(tzinfo=timezone.utc) == T + timedelta(minutes=5)
    assert refreshed.updated_at.replace(tzinfo=timezone.utc) == now


def test_storage_failures_surface_as_storage_error(db_session, monkeypatch):
    def failing_execute(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection lost"))

    monkeypatch.setattr(db_session, "execute", failing_execute)
    with pytest.raises(StorageError):
        find_schedule_conflicts(db_session, T, T + timedelta(minutes=5))


def test_built_resolver_uses_configured_slot_width(db_session):
    add_scheduled(db_session, title="Busy", scheduled_at=T + timedelta(minutes=7))
    db_session.commit()

    resolver = build_slot_resolver(db_session, Settings(schedule_slot_minutes=10, schedule_max_search_slots=6))
    assert resolver.slot_interval == timedelta(minutes=10)
    assert resolver.max_iterations == 6

    result = resolver.seek_forward(T)
    assert result.scheduled_at == T + timedelta(minutes=10)
    assert result.auto_adjusted is True


def test_built_resolver_reflows_against_stored_authors(db_session):
    admin = add_user(db_session, "admin@uni.edu", UserRole.admin)
    existing = add_scheduled(db_session, title="Existing", scheduled_at=T, author=admin, priority_level=1)
    db_session.commit()

    resolver = build_slot_resolver(db_session, Settings())
    result = resolver.resolve(T, requester_role_priority=4, priority_level=1, is_privileged_scheduler=True)

    assert result.scheduled_at == T
    assert result.adjustments == [ScheduleAdjustment(id=existing.id, new_time=T + timedelta(minutes=5))]
