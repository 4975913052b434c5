"""
Typed runtime settings stored as strings in system_settings, with a short
process-local cache.
"""

import json
import time
from typing import Any, Dict, Optional

import structlog
from sqlalchemy.orm import Session

from tirestore.core.exceptions import ValidationError
from tirestore.core.rate_limiter import apply_rate_limits
from tirestore.models.system_setting import SystemSetting

logger = structlog.get_logger()

CACHE_TTL_SECONDS = 300

DEFAULT_SETTINGS: Dict[str, Any] = {
    "site_name": "Tire Store",
    "site_description": "Quality tires at fair prices",
    "contact_email": "info@tirestore.com",
    "contact_phone": "",
    "currency": "EUR",
    "tax_rate": 0.0,
    "free_shipping_threshold": 0.0,
    "shipping_cost": 0.0,
    "maintenance_mode": False,
    "allow_registration": True,
    "require_email_verification": True,
    "orders_notification_email": "",
    "low_stock_threshold": 10,
}

RATE_LIMIT_DEFAULTS: Dict[str, Dict[str, int]] = {
    "general": {"windowMs": 15 * 60 * 1000, "max": 1000},
    "auth": {"windowMs": 15 * 60 * 1000, "max": 30},
    "payment": {"windowMs": 15 * 60 * 1000, "max": 10},
    "upload": {"windowMs": 15 * 60 * 1000, "max": 20},
}

_cache: Dict[str, Any] = {"values": None, "loaded_at": 0.0}


def _coerce(raw: str, default: Any) -> Any:
    """Parse a stored string into the type of its default."""
    if isinstance(default, bool):
        return raw.strip().lower() in {"true", "1", "yes", "on"}
    if isinstance(default, int):
        try:
            return int(float(raw))
        except ValueError:
            return default
    if isinstance(default, float):
        try:
            return float(raw)
        except ValueError:
            return default
    return raw


def _to_string(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def clear_cache() -> None:
    _cache["values"] = None
    _cache["loaded_at"] = 0.0


def get_settings(db: Session, use_cache: bool = True) -> Dict[str, Any]:
    if use_cache and _cache["values"] is not None and time.time() - _cache["loaded_at"] < CACHE_TTL_SECONDS:
        return dict(_cache["values"])

    values = dict(DEFAULT_SETTINGS)
    for row in db.query(SystemSetting).all():
        values[row.key] = _coerce(row.value, DEFAULT_SETTINGS.get(row.key, ""))

    _cache["values"] = values
    _cache["loaded_at"] = time.time()
    return dict(values)


def get_setting(db: Session, key: str, default: Any = None) -> Any:
    return get_settings(db).get(key, default)


def upsert_settings(
    db: Session,
    values: Dict[str, Any],
    updated_by: Optional[int] = None,
    category: str = "general",
) -> Dict[str, Any]:
    existing = {
        row.key: row
        for row in db.query(SystemSetting).filter(SystemSetting.key.in_(list(values)))
    }
    for key, value in values.items():
        row = existing.get(key)
        if row is None:
            row = SystemSetting(key=key, category=category)
            db.add(row)
        row.value = _to_string(value)
        row.updated_by = updated_by
    db.commit()
    clear_cache()
    logger.info("system_settings_updated", keys=sorted(values), updated_by=updated_by)
    return get_settings(db, use_cache=False)


def get_rate_limits(db: Session) -> Dict[str, Dict[str, int]]:
    keys = [f"rate_limit_{name}" for name in RATE_LIMIT_DEFAULTS]
    rows = {row.key: row for row in db.query(SystemSetting).filter(SystemSetting.key.in_(keys))}

    limits = {}
    for name, default in RATE_LIMIT_DEFAULTS.items():
        row = rows.get(f"rate_limit_{name}")
        config = dict(default)
        if row is not None:
            try:
                config.update(json.loads(row.value))
            except ValueError:
                logger.warning("rate_limit_setting_unparseable", key=row.key)
        limits[name] = config
    return limits


def set_rate_limits(db: Session, limits: Dict[str, Dict[str, int]], updated_by: Optional[int] = None):
    unknown = set(limits) - set(RATE_LIMIT_DEFAULTS)
    if unknown:
        raise ValidationError(f"Unknown rate limit groups: {', '.join(sorted(unknown))}")
    upsert_settings(
        db,
        {f"rate_limit_{name}": config for name, config in limits.items()},
        updated_by=updated_by,
        category="rate_limits",
    )
    limits = get_rate_limits(db)
    apply_rate_limits(limits)
    return limits
