import structlog
from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tirestore.api.deps import get_current_user
from tirestore.core.exceptions import EmailAlreadyExists, ValidationError
from tirestore.core.security import hash_password, verify_password
from tirestore.db.session import get_db
from tirestore.models.order import Order
from tirestore.models.user import User
from tirestore.schemas.user import AccountUpdate, PasswordChange
from tirestore.utils.response import success
from tirestore.utils.serializers import user_to_dict

router = APIRouter()
logger = structlog.get_logger()


@router.get("", response_model=dict)
@router.get("/", response_model=dict)
def get_account(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    order_count = db.query(func.count(Order.id)).filter(Order.user_id == current_user.id).scalar()
    data = user_to_dict(current_user)
    data["orderCount"] = order_count
    return success(data=data, message="Account retrieved")


@router.put("", response_model=dict)
@router.put("/", response_model=dict)
def update_account(
    payload: AccountUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if not changes:
        raise ValidationError("Nothing to update")

    if "email" in changes:
        email = changes["email"].lower()
        if email != current_user.email:
            taken = db.query(User.id).filter(User.email == email, User.id != current_user.id).first()
            if taken:
                raise EmailAlreadyExists("Email is already in use")
        changes["email"] = email

    for field, value in changes.items():
        setattr(current_user, field, value)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise EmailAlreadyExists("Email is already in use") from exc
    db.refresh(current_user)

    logger.info("account_updated", user_id=current_user.id, fields=sorted(changes))
    return success(data=user_to_dict(current_user), message="Account updated")


@router.post("/change-password", response_model=dict)
def change_password(
    payload: PasswordChange,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not verify_password(payload.current_password, current_user.password_hash):
        raise ValidationError("Current password is incorrect")

    current_user.password_hash = hash_password(payload.new_password)
    db.commit()
    logger.info("password_changed", user_id=current_user.id)
    return success(message="Password changed successfully")
