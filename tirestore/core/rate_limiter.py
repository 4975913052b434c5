from typing import Callable, Dict

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

# Admin-tunable groups; values are replaced from system_settings at startup and on update
_active_limits: Dict[str, Dict[str, int]] = {
    "auth": {"windowMs": 15 * 60 * 1000, "max": 30},
    "payment": {"windowMs": 15 * 60 * 1000, "max": 10},
    "upload": {"windowMs": 15 * 60 * 1000, "max": 20},
}


def apply_rate_limits(limits: Dict[str, Dict[str, int]]) -> None:
    for group, config in limits.items():
        if group in _active_limits:
            _active_limits[group] = dict(config)


def group_limit(group: str) -> Callable[[], str]:
    """Limit string provider for @limiter.limit, re-read on every request."""

    def provider() -> str:
        config = _active_limits[group]
        window_seconds = max(1, int(config["windowMs"]) // 1000)
        return f"{int(config['max'])} per {window_seconds} seconds"

    return provider


def active_limits() -> Dict[str, Dict[str, int]]:
    return {group: dict(config) for group, config in _active_limits.items()}
