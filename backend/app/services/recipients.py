from __future__ import annotations

from collections.abc import Iterable
import re

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.user import User

# Student addresses embed the intake batch, e.g. "jane.24b@university.edu" -> 24.
_INTAKE_CODE_PATTERN = re.compile(r"\.([0-9]{2})[a-z]", re.IGNORECASE)


def extract_intake_code(email: str | None) -> int | None:
    if not email:
        return None
    match = _INTAKE_CODE_PATTERN.search(email)
    if match is None:
        return None
    return int(match.group(1))


def matches_target_years(email: str | None, target_years: Iterable[int] | None) -> bool:
    targets = set(target_years or ())
    if not targets:
        return True
    intake_code = extract_intake_code(email)
    return intake_code is not None and intake_code in targets


def resolve_recipient_emails(db: Session, target_years: list[int] | None) -> list[str]:
    emails = db.execute(
        select(User.email).where(User.is_active.is_(True)).order_by(User.email.asc())
    ).scalars()
    return [email for email in emails if email and matches_target_years(email, target_years)]
