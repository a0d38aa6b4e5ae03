import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_optional_user, limit_reads, require_announcement_author
from app.core.config import Settings, get_settings
from app.core.exceptions import ResourceNotFoundError
from app.core.timeutils import as_utc, utc_now
from app.models.user import User
from app.schemas.announcement import (
    AnnouncementCreate,
    AnnouncementCreateResult,
    AnnouncementOut,
    AnnouncementUpdate,
    AnnouncementUpdateResult,
)
from app.services.announcements import (
    announcement_to_out,
    auto_reschedule_summary,
    create_announcement,
    deliver_announcement_email,
    get_announcement,
    is_visible_to_user,
    list_announcements,
    sort_for_display,
    update_announcement,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/announcements", response_model=list[AnnouncementOut], dependencies=[Depends(limit_reads)])
def list_visible_announcements(
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    current_user: User | None = Depends(get_optional_user),
    db: Session = Depends(get_db),
) -> list[AnnouncementOut]:
    now = utc_now()
    visible = [item for item in list_announcements(db) if is_visible_to_user(item, current_user, now=now)]
    ordered = sort_for_display(visible)
    return [announcement_to_out(item) for item in ordered[offset : offset + limit]]


@router.get("/announcements/{announcement_id}", response_model=AnnouncementOut, dependencies=[Depends(limit_reads)])
def get_visible_announcement(
    announcement_id: int,
    current_user: User | None = Depends(get_optional_user),
    db: Session = Depends(get_db),
) -> AnnouncementOut:
    announcement = get_announcement(db, announcement_id)
    if announcement is None or not is_visible_to_user(announcement, current_user):
        raise ResourceNotFoundError("Announcement", str(announcement_id))
    return announcement_to_out(announcement)


@router.post("/announcements", response_model=AnnouncementCreateResult, status_code=status.HTTP_201_CREATED)
def create(
    payload: AnnouncementCreate,
    current_user: User = Depends(require_announcement_author),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
) -> AnnouncementCreateResult:
    now = utc_now()
    announcement, resolution = create_announcement(db, settings, payload, author=current_user, now=now)
    db.commit()
    logger.info("Announcement %s created by %s", announcement.id, current_user.email)

    email_sent, email_message = False, None
    if payload.send_email:
        email_sent, email_message = deliver_announcement_email(db, announcement, now=now)
        if email_sent:
            db.commit()

    announcement = get_announcement(db, announcement.id)
    auto_rescheduled = None
    if payload.scheduled_at is not None:
        auto_rescheduled = auto_reschedule_summary(as_utc(payload.scheduled_at), resolution)
    return AnnouncementCreateResult(
        announcement=announcement_to_out(announcement),
        email_sent=email_sent,
        email_message=email_message,
        auto_rescheduled=auto_rescheduled,
    )


@router.patch("/announcements/{announcement_id}", response_model=AnnouncementUpdateResult)
def update(
    announcement_id: int,
    payload: AnnouncementUpdate,
    current_user: User = Depends(require_announcement_author),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
) -> AnnouncementUpdateResult:
    announcement = get_announcement(db, announcement_id)
    if announcement is None:
        raise ResourceNotFoundError("Announcement", str(announcement_id))

    resolution = update_announcement(db, settings, announcement, payload, editor=current_user)
    db.commit()
    logger.info("Announcement %s updated by %s", announcement_id, current_user.email)

    announcement = get_announcement(db, announcement_id)
    auto_rescheduled = None
    if payload.scheduled_at is not None:
        auto_rescheduled = auto_reschedule_summary(as_utc(payload.scheduled_at), resolution)
    return AnnouncementUpdateResult(
        announcement=announcement_to_out(announcement),
        auto_rescheduled=auto_rescheduled,
    )


@router.delete("/announcements/{announcement_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete(
    announcement_id: int,
    current_user: User = Depends(require_announcement_author),
    db: Session = Depends(get_db),
) -> None:
    announcement = get_announcement(db, announcement_id)
    if announcement is None:
        raise ResourceNotFoundError("Announcement", str(announcement_id))
    db.delete(announcement)
    db.commit()
    logger.info("Announcement %s deleted by %s", announcement_id, current_user.email)
