from datetime import datetime

from celery import shared_task
from celery.utils.log import get_task_logger

from tirestore.db.session import SessionLocal
from tirestore.models.token_blacklist import TokenBlacklist
from tirestore.models.user import User

logger = get_task_logger(__name__)


@shared_task(bind=True, max_retries=3)
def cleanup_expired_blacklisted_tokens(self):
    """Drop revoked-token rows whose tokens would have expired anyway."""
    db = SessionLocal()
    try:
        deleted = (
            db.query(TokenBlacklist)
            .filter(TokenBlacklist.expires_at < datetime.utcnow())
            .delete(synchronize_session=False)
        )
        db.commit()
        logger.info("token_blacklist_cleanup deleted=%s", deleted)
        return {"deleted": deleted}
    except Exception as exc:
        db.rollback()
        raise self.retry(exc=exc, countdown=60)
    finally:
        db.close()


@shared_task(bind=True, max_retries=3)
def clear_expired_reset_tokens(self):
    db = SessionLocal()
    try:
        cleared = (
            db.query(User)
            .filter(User.reset_token.isnot(None), User.reset_token_expires_at < datetime.utcnow())
            .update({User.reset_token: None, User.reset_token_expires_at: None}, synchronize_session=False)
        )
        db.commit()
        logger.info("reset_token_cleanup cleared=%s", cleared)
        return {"cleared": cleared}
    except Exception as exc:
        db.rollback()
        raise self.retry(exc=exc, countdown=60)
    finally:
        db.close()
