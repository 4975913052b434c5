import structlog
import ipaddress
from datetime import datetime
from typing import Optional
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from tirestore.core.config import settings
from tirestore.core.exceptions import ForbiddenError, UnauthorizedError
from tirestore.core.security import decode_token
from tirestore.db.session import get_db
from tirestore.models.token_blacklist import TokenBlacklist
from tirestore.models.user import User, UserRole

logger = structlog.get_logger()


def is_token_revoked(db: Session, jti: Optional[str]) -> bool:
    """Tokens without a JTI are treated as revoked."""
    if not jti:
        return True
    return (
        db.query(TokenBlacklist.id)
        .filter(
            TokenBlacklist.jti == jti,
            TokenBlacklist.expires_at > datetime.utcnow(),
        )
        .first()
        is not None
    )


def session_matches(payload: dict, user: User) -> bool:
    """Password resets, deactivation and production logins bump the user's session version."""
    try:
        return int(payload.get("session_version", 0)) == user.session_version
    except (TypeError, ValueError):
        return False


def get_real_client_ip(request: Request) -> tuple[str | None, list[str]]:
    """Return client IP and full proxy chain if provided."""
    direct_ip = request.client.host if request.client else None
    trust_proxy_headers = (
        settings.ENVIRONMENT == "production"
        and settings.TRUST_PROXY_HEADERS
        and settings.is_trusted_proxy(direct_ip)
    )

    if not trust_proxy_headers:
        return direct_ip, []

    chain: list[str] = []
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        chain = [ip.strip() for ip in forwarded_for.split(",") if ip.strip()]

    real_ip = request.headers.get("X-Real-IP")
    if real_ip and not chain:
        chain = [real_ip.strip()]

    for candidate in chain:
        try:
            ipaddress.ip_address(candidate)
            return candidate, chain
        except ValueError:
            continue

    return direct_ip, chain


def client_ip(request: Request) -> str:
    ip, _ = get_real_client_ip(request)
    return ip or "unknown"


def _extract_token(request: Request) -> Optional[str]:
    if request.cookies.get("access_token"):
        return request.cookies.get("access_token")
    auth_header = request.headers.get("Authorization") or ""
    if auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1]
    return None


def _user_from_token(db: Session, token: str) -> User:
    payload = decode_token(token)
    if payload.get("type") != "access":
        raise UnauthorizedError("Invalid token type")

    if is_token_revoked(db, payload.get("jti")):
        raise UnauthorizedError("Token has been revoked")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Invalid authentication credentials")

    user = db.query(User).filter(User.id == int(user_id)).first()
    if not user:
        raise UnauthorizedError("Invalid authentication credentials")

    if not user.is_active:
        raise ForbiddenError("Account is inactive")

    if not session_matches(payload, user):
        raise UnauthorizedError("Session has been invalidated. Please login again.")

    return user


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
) -> User:
    """Get current authenticated user from cookie or bearer token."""
    token = _extract_token(request)
    if not token:
        raise UnauthorizedError("Access token required")
    return _user_from_token(db, token)


def get_optional_user(
    request: Request,
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Like get_current_user, but anonymous or invalid credentials yield None."""
    token = _extract_token(request)
    if not token:
        return None
    try:
        return _user_from_token(db, token)
    except (UnauthorizedError, ForbiddenError):
        return None


def require_admin(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> User:
    if current_user.role != UserRole.ADMIN:
        raise ForbiddenError("Admin access required")

    ip, ip_chain = get_real_client_ip(request)
    action_name = f"{request.method} {request.url.path}"

    if settings.ENVIRONMENT == "production" and ip not in settings.admin_allowed_ips:
        logger.warning(
            "admin_access_denied",
            action=action_name,
            admin_user_id=current_user.id,
            client_ip=ip,
            ip_chain=ip_chain,
        )
        raise ForbiddenError("Access denied")

    logger.info(
        "admin_action",
        action=action_name,
        admin_user_id=current_user.id,
        client_ip=ip,
        ip_chain=ip_chain,
    )
    return current_user
