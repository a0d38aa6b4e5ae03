from datetime import datetime, timedelta, timezone

import pytest

from conftest import CRON_SECRET, auth_headers

from app.models.announcement import (
    Announcement,
    AnnouncementCategory,
    AnnouncementSettings,
    AnnouncementStatus,
    AnnouncementTarget,
)
from app.models.user import User
from app.services import announcements as announcement_service
from app.services import reminders as reminder_service
from app.services.reminders import run_scheduler

NOW = datetime(2030, 6, 1, 12, 0, tzinfo=timezone.utc)


def add_announcement(db, title, *, status=AnnouncementStatus.active, is_emergency=False, **settings):
    announcement = Announcement(
        title=title,
        description=f"{title} details",
        category=AnnouncementCategory.general,
        status=status,
        is_active=status != AnnouncementStatus.scheduled,
        is_emergency=is_emergency,
    )
    announcement.settings = AnnouncementSettings(**settings)
    db.add(announcement)
    db.commit()
    return announcement.id


@pytest.fixture()
def reminder_outbox(monkeypatch):
    outbox = []
    monkeypatch.setattr(reminder_service, "send_reminder_email", lambda **kwargs: outbox.append(kwargs))
    return outbox


def test_run_publishes_expires_and_reminds(db_session, reminder_outbox):
    db_session.add(User(name="Amy", email="amy.24b@uni.edu", hashed_password="x"))
    due = add_announcement(db_session, "Due", status=AnnouncementStatus.scheduled, scheduled_at=NOW - timedelta(minutes=5))
    later = add_announcement(db_session, "Later", status=AnnouncementStatus.scheduled, scheduled_at=NOW + timedelta(hours=1))
    stale = add_announcement(db_session, "Stale", expiry_date=NOW - timedelta(days=1))
    alert = add_announcement(db_session, "Alert", is_emergency=True, emergency_expires_at=NOW - timedelta(minutes=1))
    remind = add_announcement(
        db_session,
        "Remind",
        reminder_time=NOW - timedelta(minutes=10),
        send_email=True,
        email_sent=True,
    )

    summary = run_scheduler(db_session, NOW)
    db_session.commit()

    assert summary.timestamp == NOW
    assert summary.published == 1
    assert summary.expired == 2
    assert summary.reminders.processed == 1
    assert summary.reminders.sent == 1
    assert reminder_outbox[0]["title"] == "Remind"
    assert reminder_outbox[0]["recipient_emails"] == ["amy.24b@uni.edu"]

    db_session.expire_all()
    assert db_session.get(Announcement, due).status == AnnouncementStatus.active
    assert db_session.get(Announcement, due).is_active is True
    assert db_session.get(Announcement, later).status == AnnouncementStatus.scheduled
    assert db_session.get(Announcement, stale).status == AnnouncementStatus.expired
    assert db_session.get(Announcement, alert).is_active is False
    assert db_session.get(Announcement, remind).settings.reminder_sent is True

    again = run_scheduler(db_session, NOW)
    assert (again.published, again.expired, again.reminders.processed) == (0, 0, 0)


def test_reminder_failures_are_collected(db_session, monkeypatch):
    def failing(**kwargs):
        raise reminder_service.EmailDeliveryError("SMTP connection failed")

    monkeypatch.setattr(reminder_service, "send_reminder_email", failing)
    monkeypatch.setattr(announcement_service, "send_announcement_email", failing)
    db_session.add(User(name="Amy", email="amy.24b@uni.edu", hashed_password="x"))
    remind = add_announcement(db_session, "Remind", reminder_time=NOW - timedelta(minutes=1), send_email=True)

    summary = run_scheduler(db_session, NOW)

    assert summary.emails_retried == 0
    assert summary.reminders.failed == 1
    assert summary.reminders.errors == [f"Announcement {remind}: SMTP connection failed"]
    assert db_session.get(Announcement, remind).settings.reminder_sent is False


def test_reminder_without_recipients_is_marked_sent(db_session, reminder_outbox):
    db_session.add(User(name="Dean", email="dean@uni.edu", hashed_password="x"))
    db_session.commit()
    remind = add_announcement(db_session, "Batch 24", reminder_time=NOW - timedelta(minutes=1), send_email=True)
    announcement = db_session.get(Announcement, remind)
    announcement.targets.append(AnnouncementTarget(target_year=24))
    db_session.commit()

    summary = run_scheduler(db_session, NOW)

    assert summary.reminders.processed == 1
    assert summary.reminders.sent == 0
    assert reminder_outbox == []
    assert db_session.get(Announcement, remind).settings.reminder_sent is True


def test_failed_publication_email_is_retried_on_next_run(db_session, monkeypatch):
    outbox = []

    def failing(**kwargs):
        raise announcement_service.EmailDeliveryError("SMTP connection failed")

    monkeypatch.setattr(announcement_service, "send_announcement_email", failing)
    db_session.add(User(name="Amy", email="amy.24b@uni.edu", hashed_password="x"))
    due = add_announcement(
        db_session,
        "Exam hall change",
        status=AnnouncementStatus.scheduled,
        scheduled_at=NOW - timedelta(minutes=5),
        send_email=True,
    )

    first = run_scheduler(db_session, NOW)
    db_session.commit()

    assert first.published == 1
    assert first.emails_retried == 0
    assert db_session.get(Announcement, due).settings.email_sent is False

    monkeypatch.setattr(announcement_service, "send_announcement_email", lambda **kwargs: outbox.append(kwargs))
    second = run_scheduler(db_session, NOW + timedelta(minutes=5))
    db_session.commit()

    assert second.published == 0
    assert second.emails_retried == 1
    assert outbox[0]["title"] == "Exam hall change"
    assert db_session.get(Announcement, due).settings.email_sent is True

    third = run_scheduler(db_session, NOW + timedelta(minutes=10))
    assert third.emails_retried == 0
    assert len(outbox) == 1


def test_pending_email_of_unscheduled_announcement_is_retried(db_session, monkeypatch):
    outbox = []
    monkeypatch.setattr(announcement_service, "send_announcement_email", lambda **kwargs: outbox.append(kwargs))
    db_session.add(User(name="Amy", email="amy.24b@uni.edu", hashed_password="x"))
    published = add_announcement(db_session, "Library hours", send_email=True)
    add_announcement(db_session, "Draft", status=AnnouncementStatus.expired, send_email=True)

    summary = run_scheduler(db_session, NOW)

    assert summary.emails_retried == 1
    assert [item["title"] for item in outbox] == ["Library hours"]
    assert db_session.get(Announcement, published).settings.email_sent is True


def test_endpoint_requires_cron_secret(client):
    assert client.post("/api/scheduler/run").status_code == 401
    assert client.post("/api/scheduler/run", headers=auth_headers("wrong")).status_code == 401

    response = client.post("/api/scheduler/run", headers=auth_headers(CRON_SECRET))
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["published"] == 0
    assert body["emails_retried"] == 0
    assert body["reminders"] == {"processed": 0, "sent": 0, "failed": 0, "errors": []}

    assert client.get("/api/scheduler/run", headers=auth_headers(CRON_SECRET)).status_code == 200


def test_endpoint_without_secret_is_open_only_in_development(client, test_settings):
    test_settings.cron_secret = None

    misconfigured = client.post("/api/scheduler/run")
    assert misconfigured.status_code == 500
    assert misconfigured.json()["message"] == "CRON_SECRET is not configured"

    test_settings.environment = "development"
    assert client.post("/api/scheduler/run").status_code == 200
