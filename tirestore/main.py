import time
import uuid
from datetime import datetime

import sentry_sdk
import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException

from tirestore.api.v1 import (
    account,
    admin,
    auth,
    banners,
    blog,
    cart,
    categories,
    contact,
    dashboard,
    orders,
    payments,
    products,
    reviews,
    settings as user_settings,
    upload,
    users,
    wishlist,
)
from tirestore.core.celery_app import celery_app
from tirestore.core.config import settings
from tirestore.core.exceptions import APIError
from tirestore.core.logging_config import configure_logging
from tirestore.core.rate_limiter import apply_rate_limits, limiter
from tirestore.db.session import SessionLocal, engine
from tirestore.middleware.csrf import requires_csrf_check, verify_csrf_token
from tirestore.models.user import User, UserRole
from tirestore.services import settings_service
from tirestore.utils.response import error_response

API_VERSION = "1.0.0"


# --------------------------------------------------
# CONFIGURE LOGGING (FIRST)
# --------------------------------------------------
configure_logging()
logger = structlog.get_logger()

# --------------------------------------------------
# INITIALIZE SENTRY (ONLY IN PRODUCTION)
# --------------------------------------------------
if settings.ENVIRONMENT == "production" and settings.SENTRY_DSN:
    try:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            environment=settings.ENVIRONMENT,
            traces_sample_rate=0.1,
            integrations=[
                FastApiIntegration(),
                SqlalchemyIntegration(),
            ],
        )
        logger.info("sentry_initialized", environment=settings.ENVIRONMENT)
    except Exception as exc:
        logger.warning("sentry_init_failed", error=str(exc))

# --------------------------------------------------
# CREATE FASTAPI APP
# --------------------------------------------------
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=API_VERSION,
    openapi_url=f"{settings.API_PREFIX}/openapi.json",
    docs_url=f"{settings.API_PREFIX}/docs",
    redoc_url=f"{settings.API_PREFIX}/redoc",
)


@app.on_event("startup")
def load_rate_limits():
    """Apply admin-configured rate limits stored in system_settings."""
    db = SessionLocal()
    try:
        apply_rate_limits(settings_service.get_rate_limits(db))
        logger.info("rate_limits_loaded")
    except SQLAlchemyError as exc:
        # Fresh databases have no system_settings table until migrations run
        logger.warning("rate_limits_load_failed", error=str(exc))
    finally:
        db.close()


@app.on_event("startup")
def validate_production_admin_bootstrap():
    """Fail fast in production when no admin account exists."""
    if settings.ENVIRONMENT != "production":
        return

    db = SessionLocal()
    try:
        admin_exists = (
            db.query(User.id)
            .filter(User.role == UserRole.ADMIN, User.is_active.is_(True))
            .first()
            is not None
        )
    finally:
        db.close()

    if not admin_exists:
        raise RuntimeError(
            "No active admin user found in production. "
            "Create an admin user before starting the API."
        )


# --------------------------------------------------
# RATE LIMITING SETUP
# --------------------------------------------------
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return error_response(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        message="Too many requests. Please try again later.",
        errors=[{"code": "rate_limited", "limit": str(exc.detail)}],
    )


# --------------------------------------------------
# CORS MIDDLEWARE
# --------------------------------------------------
cors_origins = list(settings.BACKEND_CORS_ORIGINS)
# Cookies need the exact frontend origin
if settings.FRONTEND_URL and settings.FRONTEND_URL not in cors_origins:
    cors_origins.append(settings.FRONTEND_URL)
if settings.ENVIRONMENT != "production":
    for origin in ["http://localhost:3000", "http://127.0.0.1:5173", "http://127.0.0.1:8000"]:
        if origin not in cors_origins:
            cors_origins.append(origin)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "X-CSRF-Token",
        "X-Requested-With",
        "X-Correlation-ID",
    ],
    expose_headers=["X-Process-Time", "X-Correlation-ID"],
    max_age=3600,
)

# --------------------------------------------------
# TRUSTED HOSTS (PRODUCTION ONLY)
# --------------------------------------------------
if settings.ENVIRONMENT == "production":
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS)


# --------------------------------------------------
# CSRF (PRODUCTION ONLY)
# --------------------------------------------------
@app.middleware("http")
async def csrf_middleware(request: Request, call_next):
    if requires_csrf_check(request) and not verify_csrf_token(request):
        logger.warning("csrf_validation_failed", path=request.url.path, method=request.method)
        return error_response(
            status_code=status.HTTP_403_FORBIDDEN,
            message="CSRF validation failed",
            errors=[{"code": "csrf_failed"}],
        )
    return await call_next(request)


# --------------------------------------------------
# SECURITY HEADERS MIDDLEWARE
# --------------------------------------------------
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    response.headers["Content-Security-Policy"] = (
        "default-src 'self'; "
        "script-src 'self' https://js.stripe.com; "
        "frame-src https://js.stripe.com https://hooks.stripe.com; "
        "style-src 'self' 'unsafe-inline';"
    )
    if settings.ENVIRONMENT == "production":
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


# --------------------------------------------------
# REQUEST CONTEXT (correlation id, timing, access log)
# --------------------------------------------------
@app.middleware("http")
async def request_context(request: Request, call_next):
    correlation_id = request.headers.get("X-Correlation-ID") or uuid.uuid4().hex
    request.state.correlation_id = correlation_id
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)

    started = time.perf_counter()
    logger.info(
        "request_started",
        method=request.method,
        path=request.url.path,
        client_ip=request.client.host if request.client else None,
    )
    try:
        response = await call_next(request)
        elapsed = time.perf_counter() - started
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(elapsed * 1000, 2),
        )
    finally:
        structlog.contextvars.unbind_contextvars("correlation_id")

    response.headers["X-Correlation-ID"] = correlation_id
    response.headers["X-Process-Time"] = f"{elapsed:.4f}"
    return response


# --------------------------------------------------
# INCLUDE ROUTERS
# --------------------------------------------------
api = settings.API_PREFIX
app.include_router(auth.router, prefix=f"{api}/auth", tags=["Authentication"])
app.include_router(products.router, prefix=f"{api}/products", tags=["Products"])
app.include_router(categories.router, prefix=f"{api}/categories", tags=["Categories"])
app.include_router(cart.router, prefix=f"{api}/cart", tags=["Cart"])
app.include_router(wishlist.router, prefix=f"{api}/wishlist", tags=["Wishlist"])
app.include_router(orders.router, prefix=f"{api}/orders", tags=["Orders"])
app.include_router(payments.router, prefix=api, tags=["Payments"])
app.include_router(reviews.router, prefix=f"{api}/reviews", tags=["Reviews"])
app.include_router(blog.router, prefix=f"{api}/blog", tags=["Blog"])
app.include_router(contact.router, prefix=f"{api}/contact", tags=["Contact"])
app.include_router(banners.router, prefix=f"{api}/banners", tags=["Banners"])
app.include_router(account.router, prefix=f"{api}/account", tags=["Account"])
app.include_router(user_settings.router, prefix=f"{api}/settings", tags=["Settings"])
app.include_router(users.router, prefix=f"{api}/users", tags=["Users"])
app.include_router(dashboard.router, prefix=f"{api}/dashboard", tags=["Dashboard"])
app.include_router(admin.router, prefix=f"{api}/admin", tags=["Admin"])
app.include_router(upload.router, prefix=f"{api}/upload", tags=["Upload"])


# --------------------------------------------------
# HEALTH CHECK ENDPOINTS
# --------------------------------------------------
@app.get("/health")
def health_check():
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "version": API_VERSION,
        "timestamp": f"{datetime.utcnow().isoformat()}Z",
    }


@app.get("/health/email")
def email_health_check():
    try:
        with celery_app.connection_or_acquire() as connection:
            connection.ensure_connection(max_retries=1)
    except Exception as exc:
        return {"status": "unhealthy", "reason": f"Broker connection failed: {exc}"}

    try:
        inspector = celery_app.control.inspect(timeout=1.0)
        active_workers = inspector.ping() or {}
        if not active_workers:
            return {"status": "unhealthy", "reason": "No active Celery workers"}
        return {"status": "healthy", "workers": len(active_workers)}
    except Exception as exc:
        return {"status": "unhealthy", "reason": f"Celery worker check failed: {exc}"}


@app.get("/health/database")
def database_health_check():
    try:
        with engine.connect() as connection:
            connection.exec_driver_sql("SELECT 1")

        pool = engine.pool
        metrics = {
            "pool_class": pool.__class__.__name__,
            "size": pool.size() if hasattr(pool, "size") else None,
            "checked_out": pool.checkedout() if hasattr(pool, "checkedout") else None,
            "overflow": pool.overflow() if hasattr(pool, "overflow") else None,
            "status": pool.status() if hasattr(pool, "status") else None,
        }
        return {"status": "healthy", "pool": metrics}
    except SQLAlchemyError as exc:
        logger.error("database_health_check_failed", error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "pool": {}, "reason": "Database connectivity check failed"},
        )


@app.get("/")
def root():
    return {
        "message": settings.PROJECT_NAME,
        "docs": f"{settings.API_PREFIX}/docs",
        "version": API_VERSION,
    }


# --------------------------------------------------
# EXCEPTION HANDLERS
# --------------------------------------------------
@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    return error_response(
        status_code=exc.status_code,
        message=exc.message,
        errors=exc.errors,
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    detail = exc.detail

    if isinstance(detail, str):
        message = detail
        errors = []
    elif isinstance(detail, list):
        message = "Request failed"
        errors = detail
    elif isinstance(detail, dict):
        message = detail.get("message", "Request failed")
        errors = detail.get("errors", [])
    else:
        message = "Request failed"
        errors = []

    return error_response(
        status_code=exc.status_code,
        message=message,
        errors=errors,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg"),
            "type": error.get("type"),
        }
        for error in exc.errors()
    ]
    return error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Validation failed",
        errors=errors,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_exception", error_type=type(exc).__name__, path=request.url.path)

    if settings.DEBUG and settings.ENVIRONMENT != "production":
        return error_response(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            message=f"Internal server error: {exc}",
            errors=[{"type": type(exc).__name__}],
        )

    return error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="Internal server error",
    )
