import hmac
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.api.deps import get_db, optional_security
from app.core.config import Settings, get_settings
from app.core.exceptions import ConfigurationError
from app.schemas.scheduler import ReminderRunOut, SchedulerRunOut
from app.services.reminders import run_scheduler

router = APIRouter()
logger = logging.getLogger(__name__)


def verify_cron_secret(
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_security),
    settings: Settings = Depends(get_settings),
) -> None:
    if not settings.cron_secret:
        if settings.is_development:
            return
        logger.error("Scheduler run rejected: CRON_SECRET is not configured")
        raise ConfigurationError("CRON_SECRET is not configured")
    provided = credentials.credentials if credentials is not None else ""
    if not hmac.compare_digest(provided.encode(), settings.cron_secret.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@router.api_route(
    "/scheduler/run",
    methods=["GET", "POST"],
    response_model=SchedulerRunOut,
    dependencies=[Depends(verify_cron_secret)],
)
def trigger_scheduler(db: Session = Depends(get_db)) -> SchedulerRunOut:
    summary = run_scheduler(db)
    db.commit()
    logger.info(
        "Scheduler run complete: %d published, %d expired, %d reminder(s) sent",
        summary.published,
        summary.expired,
        summary.reminders.sent,
    )
    return SchedulerRunOut(
        message="Scheduler run completed",
        timestamp=summary.timestamp,
        published=summary.published,
        emails_retried=summary.emails_retried,
        expired=summary.expired,
        reminders=ReminderRunOut.model_validate(summary.reminders),
    )
