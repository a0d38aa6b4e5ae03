import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_roles
from app.models.user import User, UserRole
from app.schemas.user import UserOut, UserRoleUpdate

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/admin/users", response_model=list[UserOut])
def list_users(
    role: UserRole | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.super_admin)),
) -> list[UserOut]:
    query = select(User).order_by(User.email.asc())
    if role is not None:
        query = query.where(User.role == role)
    return list(db.execute(query.offset(offset).limit(limit)).scalars())


@router.patch("/admin/users/{user_id}/role", response_model=UserOut)
def update_user_role(
    user_id: str,
    payload: UserRoleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.super_admin)),
) -> UserOut:
    if user_id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot change your own role")
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    previous = user.role
    user.role = payload.role
    db.commit()
    db.refresh(user)
    logger.info("User %s role changed from %s to %s by %s", user.email, previous.value, user.role.value, current_user.email)
    return user
