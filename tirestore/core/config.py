from pydantic_settings import BaseSettings
from pydantic import Field, field_validator, model_validator
from typing import List, Optional
import json
import ipaddress


class Settings(BaseSettings):
    # Project Info
    PROJECT_NAME: str = "Tire Store API"
    API_PREFIX: str = "/api"

    # Database
    DATABASE_URL: str

    # Security
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 120
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60

    # Stripe
    STRIPE_SECRET_KEY: str
    STRIPE_WEBHOOK_SECRET: str
    STRIPE_CURRENCY: str = "eur"

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = [
        "http://localhost:5173",
        "https://tirestore.com",
        "https://www.tirestore.com",
    ]

    # Email
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    EMAILS_FROM_EMAIL: str = ""
    EMAILS_FROM_NAME: str = "Tire Store"
    ADMIN_EMAIL: str = ""
    SUPPORT_EMAIL: str = "security@tirestore.com"

    # Object storage (S3)
    AWS_REGION: str = "eu-central-1"
    AWS_S3_BUCKET: str = ""
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    PRESIGNED_URL_EXPIRES: int = 3600

    # File Upload
    MAX_UPLOAD_SIZE: int = 10485760  # 10MB
    ALLOWED_EXTENSIONS: List[str] = ["jpg", "jpeg", "png", "webp", "gif"]
    MAX_FILES_PER_UPLOAD: int = 10

    # Catalog search
    SEARCH_MAX_CANDIDATES: int = 5000
    SEARCH_FUZZY_THRESHOLD: float = 0.3

    # Login guard
    LOGIN_GUARD_BACKEND: str = "redis"
    LOGIN_GUARD_WINDOW_SECONDS: int = 3600

    # Environment
    ENVIRONMENT: str = "development"
    ENV: Optional[str] = Field(default=None)

    DEBUG: bool = False

    # Frontend
    FRONTEND_URL: str = "https://tirestore.com"

    # Monitoring (Optional - Add to .env for production)
    SENTRY_DSN: str = ""

    # Celery & Redis (Task Queue)
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"

    # Hosts accepted by TrustedHostMiddleware in production
    ALLOWED_HOSTS: List[str] = ["tirestore.com", "www.tirestore.com", "api.tirestore.com"]

    # Admin Security
    ADMIN_ALLOWED_IPS: str = ""
    DEFAULT_ADMIN_EMAIL: str = "admin@tirestore.com"
    DEFAULT_ADMIN_PASSWORD: str = ""
    TRUST_PROXY_HEADERS: bool = True
    TRUSTED_PROXY_IPS: str = "127.0.0.1,::1"

    @field_validator("ENVIRONMENT", "LOGIN_GUARD_BACKEND")
    @classmethod
    def normalize_lowercase(cls, value: str) -> str:
        return value.lower().strip()

    @classmethod
    def _parse_ip_list(cls, value) -> List[str]:
        if isinstance(value, str):
            raw = value.strip()
            if not raw:
                return []
            if raw.startswith("["):
                try:
                    parsed = json.loads(raw)
                    if isinstance(parsed, list):
                        return parsed
                except json.JSONDecodeError as exc:
                    raise ValueError("IP lists must be valid JSON or comma-separated IPs") from exc
            return [ip.strip() for ip in raw.split(",")]
        if isinstance(value, list):
            return [str(ip).strip() for ip in value if str(ip).strip()]
        return value

    @field_validator("ADMIN_ALLOWED_IPS", "TRUSTED_PROXY_IPS")
    @classmethod
    def validate_ip_format(cls, value: str) -> str:
        normalized = cls._parse_ip_list(value)
        for ip in normalized:
            try:
                ipaddress.ip_address(ip)
            except ValueError as exc:
                raise ValueError(f"Invalid IP address: {ip}") from exc
        return ",".join(normalized)

    @field_validator("LOGIN_GUARD_BACKEND")
    @classmethod
    def validate_login_guard_backend(cls, value: str) -> str:
        if value not in {"redis", "memory"}:
            raise ValueError("LOGIN_GUARD_BACKEND must be 'redis' or 'memory'")
        return value

    @model_validator(mode="after")
    def validate_production_settings(self):
        if self.ENVIRONMENT != "production":
            return self
        if not self.admin_allowed_ips:
            raise ValueError("ADMIN_ALLOWED_IPS must be set in production")
        normalized_secret = (self.SECRET_KEY or "").strip()
        if len(normalized_secret) < 32 or "your-secret-key-here" in normalized_secret.lower():
            raise ValueError("SECRET_KEY must be at least 32 chars and not use placeholders in production")
        if (self.STRIPE_SECRET_KEY or "").startswith("sk_test_"):
            raise ValueError("STRIPE_SECRET_KEY must use a live key in production")
        if self.LOGIN_GUARD_BACKEND != "redis":
            raise ValueError("LOGIN_GUARD_BACKEND must be 'redis' in production")
        return self

    @property
    def admin_allowed_ips(self) -> List[str]:
        return self._parse_ip_list(self.ADMIN_ALLOWED_IPS)

    @property
    def trusted_proxy_ips(self) -> List[str]:
        return self._parse_ip_list(self.TRUSTED_PROXY_IPS)

    @property
    def s3_public_base_url(self) -> str:
        return f"https://{self.AWS_S3_BUCKET}.s3.{self.AWS_REGION}.amazonaws.com"

    def is_trusted_proxy(self, ip: str | None) -> bool:
        if not ip:
            return False
        if ip in {"127.0.0.1", "::1"}:
            return True
        return ip in self.trusted_proxy_ips

    model_config = {
        "env_file": ".env",
        "case_sensitive": True,
        "extra": "ignore",
    }


settings = Settings()
