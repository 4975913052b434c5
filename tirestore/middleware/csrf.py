"""Double-submit CSRF protection for cookie-authenticated browsers.

The token lives in a readable cookie and must be echoed in the
``X-CSRF-Token`` header on every state-changing request. Only enforced in
production; Bearer-token API clients in development are unaffected.
"""
import hmac
from secrets import token_urlsafe

from fastapi import Request, Response

from tirestore.core.config import settings

CSRF_COOKIE_NAME = "csrf_token"
CSRF_HEADER_NAME = "X-CSRF-Token"
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "TRACE"})

# Reached before a CSRF cookie exists, or called server-to-server by Stripe
CSRF_EXEMPT_PATHS = frozenset(
    f"{settings.API_PREFIX}{path}"
    for path in (
        "/auth/login",
        "/auth/register",
        "/auth/refresh",
        "/auth/logout",
        "/auth/forgot-password",
        "/auth/reset-password",
        "/auth/resend-verification",
        "/webhook/stripe",
    )
)


def issue_csrf_cookie(response: Response) -> str:
    """Attach a fresh CSRF cookie to ``response`` and return its value."""
    token = token_urlsafe(32)
    response.set_cookie(
        key=CSRF_COOKIE_NAME,
        value=token,
        httponly=False,  # the frontend reads it to fill the header
        secure=settings.ENVIRONMENT == "production",
        samesite="lax",
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 86400,
        path="/",
    )
    return token


def verify_csrf_token(request: Request) -> bool:
    cookie_value = request.cookies.get(CSRF_COOKIE_NAME, "")
    header_value = request.headers.get(CSRF_HEADER_NAME, "")
    return bool(cookie_value) and hmac.compare_digest(cookie_value, header_value)


def requires_csrf_check(request: Request) -> bool:
    if settings.ENVIRONMENT != "production" or request.method in SAFE_METHODS:
        return False
    return (request.url.path.rstrip("/") or "/") not in CSRF_EXEMPT_PATHS
