from datetime import timedelta
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db
from app.core.config import Settings, get_settings
from app.core.security import create_access_token, get_password_hash, verify_password
from app.core.timeutils import utc_now
from app.models.user import User, UserRole
from app.schemas.user import Token, UserCreate, UserLogin, UserOut
from app.services.rate_limit import client_ip, enforce_rate_limit

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def register(
    payload: UserCreate,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> UserOut:
    enforce_rate_limit(
        scope="auth.register",
        identity=client_ip(request),
        limit=settings.rate_limit_write_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    existing = db.execute(select(User).where(User.email == payload.email)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    role = UserRole.super_admin if payload.email in settings.bootstrap_super_admin_emails else UserRole.student
    user = User(
        name=payload.name,
        email=payload.email,
        hashed_password=get_password_hash(payload.password),
        role=role,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered") from exc

    db.refresh(user)
    if role == UserRole.super_admin:
        logger.info("Bootstrapped super admin account %s", user.email)
    return user


@router.post("/login", response_model=Token)
def login(
    payload: UserLogin,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Token:
    enforce_rate_limit(
        scope="auth.login",
        identity=f"{client_ip(request)}|{payload.email}",
        limit=settings.rate_limit_write_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    user = db.execute(select(User).where(User.email == payload.email)).scalar_one_or_none()
    if user is None or not verify_password(payload.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")

    user.last_login_at = utc_now()
    db.commit()
    db.refresh(user)

    access_token = create_access_token(user.id, expires_delta=timedelta(minutes=settings.access_token_expire_minutes))
    return Token(access_token=access_token, token_type="bearer", user=user)


@router.get("/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)) -> UserOut:
    return current_user
