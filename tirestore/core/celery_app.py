from celery import Celery
from celery.schedules import crontab

from tirestore.core.config import settings

celery_app = Celery(
    "tirestore",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["tirestore.tasks.email_tasks", "tirestore.tasks.security_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    broker_connection_retry_on_startup=True,

    # One SMTP round trip per task
    task_time_limit=120,
    task_soft_time_limit=90,

    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # Email tasks are fire-and-forget
    task_ignore_result=True,
    result_expires=1800,
)

celery_app.conf.task_routes = {
    "tirestore.tasks.email_tasks.*": {"queue": "emails"},
    "tirestore.tasks.security_tasks.*": {"queue": "maintenance"},
}

celery_app.conf.beat_schedule = {
    "purge-revoked-tokens-nightly": {
        "task": "tirestore.tasks.security_tasks.cleanup_expired_blacklisted_tokens",
        "schedule": crontab(hour=3, minute=0),
    },
    "clear-expired-reset-tokens-hourly": {
        "task": "tirestore.tasks.security_tasks.clear_expired_reset_tokens",
        "schedule": crontab(minute=15),
    },
}
