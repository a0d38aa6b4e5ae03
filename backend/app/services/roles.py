from __future__ import annotations

from app.models.user import UserRole

LOWEST_PRIORITY_LEVEL = 3

_ROLE_ALIASES: dict[str, UserRole] = {
    "user": UserRole.student,
    "student": UserRole.student,
    "student_admin": UserRole.student_admin,
    "admin": UserRole.admin,
    "super_admin": UserRole.super_admin,
}

# Higher rank wins a tie on content priority when slots are reflowed.
ROLE_PRIORITY: dict[UserRole, int] = {
    UserRole.student: 1,
    UserRole.student_admin: 2,
    UserRole.admin: 3,
    UserRole.super_admin: 4,
}

# Most urgent priority level (0 is highest) each role may assign.
_HIGHEST_LEVEL_FOR_ROLE: dict[UserRole, int] = {
    UserRole.student: 3,
    UserRole.student_admin: 2,
    UserRole.admin: 1,
    UserRole.super_admin: 0,
}

_ADMIN_ROLES = frozenset({UserRole.student_admin, UserRole.admin, UserRole.super_admin})


def normalize_user_role(role: str | UserRole | None, is_admin: bool = False) -> UserRole:
    if isinstance(role, UserRole):
        return role
    fallback = UserRole.admin if is_admin else UserRole.student
    if not role:
        return fallback
    return _ROLE_ALIASES.get(role.strip().lower(), fallback)


def role_to_priority(role: str | UserRole | None) -> int:
    """Rank of an author role; unknown or missing roles rank lowest."""
    return ROLE_PRIORITY.get(normalize_user_role(role), ROLE_PRIORITY[UserRole.student])


def has_admin_access(role: str | UserRole | None) -> bool:
    return normalize_user_role(role) in _ADMIN_ROLES


def is_privileged_scheduler(role: str | UserRole | None) -> bool:
    return normalize_user_role(role) == UserRole.super_admin


def highest_priority_level_for_role(role: str | UserRole | None) -> int:
    return _HIGHEST_LEVEL_FOR_ROLE.get(normalize_user_role(role), LOWEST_PRIORITY_LEVEL)


def clamp_priority_level(level: int | None, role: str | UserRole | None) -> int:
    if level is None:
        return LOWEST_PRIORITY_LEVEL
    bounded = max(0, min(LOWEST_PRIORITY_LEVEL, int(level)))
    return max(bounded, highest_priority_level_for_role(role))
