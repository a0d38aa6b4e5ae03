from collections.abc import Callable, Generator, Iterable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.security import decode_token
from app.db.session import SessionLocal
from app.models.user import User, UserRole
from app.services.rate_limit import client_ip, enforce_rate_limit
from app.services.roles import has_admin_access

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _user_from_token(token: str, db: Session) -> User | None:
    try:
        payload = decode_token(token)
    except JWTError:
        return None
    user_id = payload.get("sub")
    if user_id is None:
        return None
    return db.get(User, user_id)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    user = _user_from_token(credentials.credentials, db)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")
    return user


def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_security),
    db: Session = Depends(get_db),
) -> User | None:
    if credentials is None:
        return None
    user = _user_from_token(credentials.credentials, db)
    if user is None or not user.is_active:
        return None
    return user


def require_roles(*roles: UserRole) -> Callable[[User], User]:
    allowed_roles: Iterable[UserRole] = set(roles)

    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed_roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current_user

    return role_checker


def email_domain_allowed(email: str, settings: Settings) -> bool:
    if not settings.allowed_email_domains:
        return True
    domain = email.rsplit("@", 1)[-1].lower()
    return domain in settings.allowed_email_domains


def require_announcement_author(
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
) -> User:
    if not email_domain_allowed(current_user.email, settings):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Email domain is not allowed")
    if not has_admin_access(current_user.role):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    enforce_rate_limit(
        scope="announcements.write",
        identity=current_user.id,
        limit=settings.rate_limit_write_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    return current_user


def limit_reads(request: Request, settings: Settings = Depends(get_settings)) -> None:
    enforce_rate_limit(
        scope="announcements.read",
        identity=client_ip(request),
        limit=settings.rate_limit_read_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
