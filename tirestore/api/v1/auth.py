from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Body, Depends, Query, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tirestore.api.deps import client_ip, get_current_user, is_token_revoked, session_matches
from tirestore.core.config import settings
from tirestore.core.exceptions import (
    EmailAlreadyExists,
    ForbiddenError,
    InvalidCredentials,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from tirestore.core.login_guard import get_login_guard
from tirestore.core.rate_limiter import group_limit, limiter
from tirestore.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    generate_token,
    hash_password,
    issue_reset_token,
    reset_token_matches,
    verify_password,
)
from tirestore.db.session import get_db
from tirestore.middleware.csrf import CSRF_COOKIE_NAME, issue_csrf_cookie
from tirestore.models.token_blacklist import TokenBlacklist
from tirestore.models.user import User
from tirestore.schemas.user import EmailRequest, PasswordReset, RefreshRequest, UserLogin, UserRegister
from tirestore.tasks.email_tasks import send_password_reset, send_verification_email
from tirestore.utils import email as mailer
from tirestore.utils.response import success
from tirestore.utils.serializers import user_to_dict

router = APIRouter()
logger = structlog.get_logger()


def _blacklist_token(db: Session, token: str, reason: str) -> None:
    payload = decode_token(token)
    jti = payload.get("jti")
    user_id = payload.get("sub")
    exp = payload.get("exp")
    if not jti or not user_id or not exp:
        return

    existing = db.query(TokenBlacklist).filter(TokenBlacklist.jti == jti).first()
    if existing:
        return

    db.add(
        TokenBlacklist(
            jti=jti,
            user_id=int(user_id),
            token_type=payload.get("type", "access"),
            expires_at=datetime.utcfromtimestamp(exp),
            reason=reason,
        )
    )


def _should_use_secure_cookies(request: Request) -> bool:
    if settings.ENVIRONMENT != "production":
        return False
    return request.url.scheme == "https"


def _set_auth_cookies(
    response: JSONResponse,
    access_token: str,
    refresh_token: Optional[str],
    request: Request,
) -> None:
    secure = _should_use_secure_cookies(request)
    response.set_cookie(
        key="access_token",
        value=access_token,
        httponly=True,
        secure=secure,
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        path="/",
    )
    if refresh_token:
        response.set_cookie(
            key="refresh_token",
            value=refresh_token,
            httponly=True,
            secure=secure,
            samesite="lax",
            max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 86400,
            path="/",
        )


def _issue_tokens(user: User) -> tuple[str, str]:
    claims = {"sub": str(user.id), "role": user.role.value, "session_version": user.session_version}
    access_token = create_access_token(data=claims)
    refresh_token = create_refresh_token(data={"sub": str(user.id), "session_version": user.session_version})
    return access_token, refresh_token


@router.get("/csrf-token")
def get_csrf_token(response: Response):
    token = issue_csrf_cookie(response)
    return success(data={"csrfToken": token}, message="CSRF token set")


@router.post(
    "/register",
    response_model=dict,
    status_code=status.HTTP_201_CREATED,
    summary="Register user account",
    responses={
        201: {"description": "Registration successful"},
        409: {"description": "Email already registered"},
        422: {"description": "Validation error"},
    },
)
@limiter.limit(group_limit("auth"))
def register(request: Request, user_in: UserRegister, db: Session = Depends(get_db)):
    email = user_in.email.lower()
    if db.query(User.id).filter(User.email == email).first():
        raise EmailAlreadyExists()

    token = generate_token()
    user = User(
        name=user_in.name,
        email=email,
        password_hash=hash_password(user_in.password),
        verification_token=token,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise EmailAlreadyExists() from exc
    db.refresh(user)

    logger.info("user_registered", user_id=user.id)
    mailer.enqueue(send_verification_email, user.email, user.name, token)

    return success(
        data=user_to_dict(user),
        message="Registration successful. Please check your email to verify your account.",
    )


@router.get("/verify")
def verify_email(
    email: str = Query(..., min_length=3),
    token: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    user = db.query(User).filter(User.email == email.lower()).first()
    if not user or not user.verification_token or user.verification_token != token:
        raise ValidationError("Invalid token")

    user.email_verified = True
    user.verification_token = None
    db.commit()
    logger.info("email_verified", user_id=user.id)
    return success(message="Email verified successfully")


@router.post("/resend-verification")
@limiter.limit(group_limit("auth"))
def resend_verification(request: Request, payload: EmailRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == payload.email.lower()).first()
    if not user:
        raise NotFoundError("User not found")
    if user.email_verified:
        raise ValidationError("Email already verified")

    if not user.verification_token:
        user.verification_token = generate_token()
        db.commit()
    mailer.enqueue(send_verification_email, user.email, user.name, user.verification_token)
    return success(message="Verification email resent.")


@router.post(
    "/login",
    response_model=dict,
    summary="Login user",
    description="""
Authenticates a user and sets `access_token` and `refresh_token` as httpOnly cookies.

Behavior:
1. Scores the request for bot/script signals and blocks obvious abuse
2. Rejects email+IP pairs that are temporarily blocked
3. Counts failed attempts, warning from the third and blocking from the sixth
4. Issues JWT tokens and clears the pair's attempt history on success
""",
    responses={
        200: {"description": "Login successful"},
        401: {"description": "Invalid credentials or unverified email"},
        403: {"description": "Account inactive"},
        429: {"description": "Temporarily blocked"},
    },
)
@limiter.limit(group_limit("auth"))
def login(request: Request, credentials: UserLogin, db: Session = Depends(get_db)):
    guard = get_login_guard()
    ip = client_ip(request)
    user_agent = request.headers.get("user-agent")
    email = credentials.email.strip().lower()

    if not email or not credentials.password:
        raise ValidationError("Missing email or password")

    score = guard.suspicion_score(request.headers, credentials.email, credentials.password)
    guard.flag_suspicious(email, ip, user_agent, score)
    guard.check_block(email, ip)
    security_warning = guard.warning_for(email, ip)

    user = db.query(User).filter(User.email == email).first()
    if not user or not verify_password(credentials.password, user.password_hash):
        result = guard.record_failure(
            email,
            ip,
            user_agent,
            "Invalid credentials - user not found" if not user else "Invalid password",
        )
        detail = {"code": InvalidCredentials.code, "blocked": result.is_blocked}
        if result.is_warning:
            detail["warning"] = (
                f"{result.failed_count} failed attempts detected. "
                f"{result.attempts_remaining} attempts remaining before temporary block."
            )
        if result.is_blocked:
            raise InvalidCredentials(
                "Account temporarily blocked due to too many failed attempts. Please try again in 1 hour.",
                errors=[detail],
            )
        raise InvalidCredentials(errors=[detail])

    if not user.is_active:
        raise ForbiddenError("Account is inactive")

    if not user.email_verified:
        if credentials.resend_verification:
            if not user.verification_token:
                user.verification_token = generate_token()
                db.commit()
            mailer.enqueue(send_verification_email, user.email, user.name, user.verification_token)
            return success(
                data={"unverified": True, "resent": True},
                message="Email not verified. Verification email resent.",
            )
        raise UnauthorizedError(
            "Email not verified. Please verify your email.",
            errors=[{"code": "email_not_verified", "unverified": True}],
        )

    guard.record_success(email, ip)

    # Rotating the session version invalidates every token issued before this login
    if settings.ENVIRONMENT == "production":
        user.session_version += 1
        db.commit()
        db.refresh(user)

    access_token, refresh_token = _issue_tokens(user)
    data = {
        "user": user_to_dict(user),
        "accessToken": access_token,
        "refreshToken": refresh_token,
    }
    if security_warning:
        data["securityWarning"] = security_warning

    logger.info("user_logged_in", user_id=user.id, client_ip=ip)
    response = JSONResponse(content=success(data=data, message="Login successful"))
    _set_auth_cookies(response, access_token, refresh_token, request)
    issue_csrf_cookie(response)
    return response


@router.post("/refresh")
@limiter.limit(group_limit("auth"))
def refresh_token(
    request: Request,
    payload: Optional[RefreshRequest] = Body(None),
    db: Session = Depends(get_db),
):
    refresh_token_value = request.cookies.get("refresh_token") or (payload.refresh_token if payload else None)
    if not refresh_token_value:
        raise UnauthorizedError("Refresh token not found")

    token_payload = decode_token(refresh_token_value)
    if token_payload.get("type") != "refresh":
        raise UnauthorizedError("Invalid token type")

    if is_token_revoked(db, token_payload.get("jti")):
        raise UnauthorizedError("Token has been revoked")

    user = db.query(User).filter(User.id == int(token_payload.get("sub", 0))).first()
    if not user or not user.is_active:
        raise UnauthorizedError("Invalid token")

    if not session_matches(token_payload, user):
        raise UnauthorizedError("Session has been invalidated. Please login again.")

    new_access_token = create_access_token(
        data={"sub": str(user.id), "role": user.role.value, "session_version": user.session_version}
    )
    response = JSONResponse(content=success(data={"accessToken": new_access_token}, message="Token refreshed"))
    _set_auth_cookies(response, new_access_token, None, request)
    return response


@router.post("/logout")
def logout(request: Request, db: Session = Depends(get_db)):
    tokens = [request.cookies.get("access_token"), request.cookies.get("refresh_token")]
    auth_header = request.headers.get("Authorization") or ""
    if auth_header.startswith("Bearer "):
        tokens.append(auth_header.split(" ", 1)[1])

    for token in tokens:
        if not token:
            continue
        try:
            _blacklist_token(db, token, reason="logout")
        except UnauthorizedError:
            continue

    try:
        db.commit()
    except IntegrityError:
        db.rollback()

    response = JSONResponse(content=success(message="Logout successful"))
    secure = _should_use_secure_cookies(request)
    response.delete_cookie(key="access_token", path="/", samesite="lax", secure=secure)
    response.delete_cookie(key="refresh_token", path="/", samesite="lax", secure=secure)
    response.delete_cookie(key=CSRF_COOKIE_NAME, path="/", samesite="lax", secure=secure)
    return response


@router.post("/forgot-password")
@limiter.limit(group_limit("auth"))
def forgot_password(request: Request, payload: EmailRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == payload.email.lower()).first()

    if user and user.is_active:
        token = issue_reset_token(user)
        db.commit()
        mailer.enqueue(send_password_reset, user.email, user.name, token)

    # Identical answer for unknown emails
    return success(message="If an account exists, password reset instructions have been sent.")


@router.post("/reset-password")
@limiter.limit(group_limit("auth"))
def reset_password(request: Request, payload: PasswordReset, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == payload.email.lower()).first()
    if not user or not reset_token_matches(user, payload.token):
        raise ValidationError("Invalid token")

    user.password_hash = hash_password(payload.password)
    user.reset_token = None
    user.reset_token_expires_at = None
    user.session_version += 1
    db.commit()

    get_login_guard().clear(email=user.email)
    logger.info("password_reset_completed", user_id=user.id)
    return success(message="Password reset successful")


@router.get("/me")
def me(current_user: User = Depends(get_current_user)):
    return success(data=user_to_dict(current_user))
