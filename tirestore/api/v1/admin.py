from typing import Any, Dict

import structlog
from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from tirestore.api.deps import require_admin
from tirestore.core.config import settings
from tirestore.core.exceptions import ValidationError
from tirestore.core.login_guard import get_login_guard
from tirestore.core.rate_limiter import active_limits, apply_rate_limits, limiter
from tirestore.db.session import get_db
from tirestore.models.user import User
from tirestore.schemas.dashboard import ClearBlockRequest, RateLimitConfig
from tirestore.services import settings_service
from tirestore.utils.email import send_email_async
from tirestore.utils.email_templates import test_email_template
from tirestore.utils.response import success

router = APIRouter()
logger = structlog.get_logger()


# -------------------------------
# Login security
# -------------------------------
@router.get("/security-blocks", response_model=dict)
def security_blocks(admin: User = Depends(require_admin)):
    blocks = get_login_guard().list_blocks()
    return success(
        data=blocks,
        meta={"total": len(blocks), "blocked": sum(1 for b in blocks if b["isBlocked"])},
    )


@router.get("/security-status/{email}", response_model=dict)
def security_status(email: str, admin: User = Depends(require_admin)):
    return success(data=get_login_guard().status(email))


@router.post("/clear-security-block", response_model=dict)
def clear_security_block(payload: ClearBlockRequest, admin: User = Depends(require_admin)):
    result = get_login_guard().clear(payload.email, payload.ip_address)
    logger.warning("security_block_cleared", admin_id=admin.id, **result)
    return success(data=result, message=f"Cleared {result['cleared']} security block(s)")


@router.post("/emergency-clear-blocks", response_model=dict)
def emergency_clear_blocks(admin: User = Depends(require_admin)):
    result = get_login_guard().clear()
    logger.warning("security_blocks_emergency_cleared", admin_id=admin.id, cleared=result["cleared"])
    return success(data=result, message="All security blocks cleared")


# -------------------------------
# System settings
# -------------------------------
@router.get("/settings", response_model=dict)
def read_settings(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return success(data=settings_service.get_settings(db))


@router.put("/settings", response_model=dict)
def update_settings(
    values: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    if not values:
        raise ValidationError("No settings provided")
    if any(key.startswith("rate_limit_") for key in values):
        raise ValidationError("Rate limits are managed through /rate-limits")

    updated = settings_service.upsert_settings(db, values, updated_by=admin.id)
    return success(data=updated, message="Settings updated")


@router.post("/settings/test-email", response_model=dict)
def send_test_email(admin: User = Depends(require_admin)):
    if not settings.SMTP_HOST:
        raise ValidationError("SMTP is not configured")

    queued = send_email_async(
        admin.email,
        "SMTP test",
        "Your SMTP settings are working.",
        test_email_template(),
    )
    if not queued:
        raise ValidationError("Test email could not be queued")
    return success(data={"to": admin.email}, message="Test email queued")


# -------------------------------
# Rate limits
# -------------------------------
@router.get("/rate-limits", response_model=dict)
def read_rate_limits(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return success(data=settings_service.get_rate_limits(db))


@router.put("/rate-limits", response_model=dict)
def update_rate_limits(
    limits: Dict[str, RateLimitConfig] = Body(...),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    if not limits:
        raise ValidationError("No rate limits provided")

    updated = settings_service.set_rate_limits(
        db,
        {group: config.model_dump(by_alias=True) for group, config in limits.items()},
        updated_by=admin.id,
    )
    return success(data=updated, message="Rate limits updated")


@router.get("/rate-limits/stats", response_model=dict)
def rate_limit_stats(admin: User = Depends(require_admin)):
    return success(
        data={
            "enabled": limiter.enabled,
            "keyedBy": "ip",
            "activeLimits": active_limits(),
            "loginGuard": {
                "backend": settings.LOGIN_GUARD_BACKEND,
                "trackedPairs": len(get_login_guard().list_blocks()),
            },
        }
    )


@router.post("/rate-limits/reset", response_model=dict)
def reset_rate_limits(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    defaults = settings_service.set_rate_limits(db, settings_service.RATE_LIMIT_DEFAULTS, updated_by=admin.id)
    apply_rate_limits(defaults)
    limiter.reset()
    logger.warning("rate_limits_reset", admin_id=admin.id)
    return success(data=defaults, message="Rate limits reset to defaults")
