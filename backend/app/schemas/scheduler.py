from datetime import datetime

from pydantic import BaseModel, Field


class ReminderRunOut(BaseModel):
    processed: int = 0
    sent: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class SchedulerRunOut(BaseModel):
    success: bool = True
    message: str = "Scheduler completed successfully"
    timestamp: datetime
    published: int = 0
    emails_retried: int = 0
    expired: int = 0
    reminders: ReminderRunOut

    model_config = {"from_attributes": True}
