from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from tirestore.api.deps import require_admin
from tirestore.core.exceptions import NotFoundError, ValidationError
from tirestore.db.session import get_db
from tirestore.models.user import User, UserRole
from tirestore.schemas.user import AdminUserUpdate
from tirestore.utils.response import paginated_response, success
from tirestore.utils.serializers import user_to_dict

router = APIRouter()
logger = structlog.get_logger()


@router.get("", response_model=dict)
@router.get("/", response_model=dict)
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=100),
    role: Optional[UserRole] = None,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    query = db.query(User)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(User.name.ilike(term), User.email.ilike(term)))
    if role:
        query = query.filter(User.role == role)

    total = query.count()
    users = query.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return paginated_response([user_to_dict(u) for u in users], total, page, limit, message="Users retrieved")


@router.get("/stats/summary", response_model=dict)
def user_stats(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    total = db.query(func.count(User.id)).scalar()
    active = db.query(func.count(User.id)).filter(User.is_active.is_(True)).scalar()
    admins = db.query(func.count(User.id)).filter(User.role == UserRole.ADMIN).scalar()
    return success(data={"total": total, "active": active, "admins": admins}, message="User statistics retrieved")


@router.put("/{user_id}", response_model=dict)
def update_user(
    user_id: int,
    payload: AdminUserUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    if user.id == admin.id and (payload.is_active is False or payload.role == UserRole.USER.value):
        raise ValidationError("You cannot demote or deactivate your own account")

    if payload.role is not None:
        user.role = UserRole(payload.role)
    if payload.is_active is not None:
        user.is_active = payload.is_active
        if not payload.is_active:
            # Deactivation ends existing sessions
            user.session_version += 1
    db.commit()
    db.refresh(user)

    logger.info("user_updated_by_admin", user_id=user.id, admin_user_id=admin.id)
    return success(data=user_to_dict(user), message="User updated")
