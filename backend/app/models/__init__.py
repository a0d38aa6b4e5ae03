from app.models.announcement import (  # noqa: F401
    LIVE_STATUSES,
    Announcement,
    AnnouncementCategory,
    AnnouncementSettings,
    AnnouncementStatus,
    AnnouncementTarget,
)
from app.models.user import User, UserRole  # noqa: F401
