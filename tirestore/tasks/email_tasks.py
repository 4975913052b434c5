from datetime import datetime
from typing import Optional

from celery import Task
from celery.utils.log import get_task_logger

from tirestore.core.celery_app import celery_app
from tirestore.core.config import settings
from tirestore.db.session import SessionLocal
from tirestore.utils.email import _send_email_smtp, build_email
from tirestore.utils import email_templates as templates

logger = get_task_logger(__name__)


# -------------------------------
# Base Task (Retry-safe)
# -------------------------------
class EmailTask(Task):
    """
    Base email task with retries and backoff.
    Prevents email loss on temporary SMTP failures.
    """
    autoretry_for = (Exception,)
    retry_kwargs = {"max_retries": 3}
    retry_backoff = True
    retry_backoff_max = 600  # 10 minutes
    retry_jitter = True
    acks_late = True  # retry if worker crashes


# -------------------------------
# Generic
# -------------------------------
@celery_app.task(base=EmailTask, bind=True)
def send_email_task(self, to_email: str, subject: str, body: str, html: Optional[str] = None):
    try:
        _send_email_smtp(build_email(to=to_email, subject=subject, text=body, html=html))
        logger.info("email_sent to=%s subject=%s", to_email, subject)
    except Exception as exc:
        logger.exception("email_send_error to=%s", to_email)
        raise self.retry(exc=exc)


# -------------------------------
# Account
# -------------------------------
@celery_app.task(base=EmailTask, bind=True)
def send_verification_email(self, email: str, name: str, token: str):
    try:
        msg = build_email(
            to=email,
            subject="Verify your email address",
            text=f"Verify your email: {settings.FRONTEND_URL}/verify-email?email={email}&token={token}",
            html=templates.verification_template(name, email, token),
        )
        _send_email_smtp(msg)
        logger.info("verification_email_sent email=%s", email)
    except Exception as exc:
        logger.exception("verification_email_error email=%s", email)
        raise self.retry(exc=exc)


@celery_app.task(base=EmailTask, bind=True)
def send_password_reset(self, email: str, name: str, reset_token: str):
    try:
        msg = build_email(
            to=email,
            subject="Reset your password",
            text="Click the link to reset your password.",
            html=templates.password_reset_template(name, email, reset_token),
        )
        _send_email_smtp(msg)
        logger.info("password_reset_sent email=%s", email)
    except Exception as exc:
        logger.exception("password_reset_error email=%s", email)
        raise self.retry(exc=exc)


# -------------------------------
# Orders
# -------------------------------
def _send_order_email(task, order_id: int, subject_prefix: str, template):
    from tirestore.models.order import Order

    db = SessionLocal()
    try:
        order = db.query(Order).filter(Order.id == order_id).first()
        if not order:
            logger.error("order_email_missing_order order_id=%s", order_id)
            return

        msg = build_email(
            to=order.user_email,
            subject=f"{subject_prefix} - {order.order_number}",
            text=f"{subject_prefix}: order {order.order_number}.",
            html=template(order),
        )
        _send_email_smtp(msg)
        logger.info("order_email_sent order_id=%s subject=%s", order_id, subject_prefix)
    except Exception as exc:
        logger.exception("order_email_error order_id=%s", order_id)
        raise task.retry(exc=exc)
    finally:
        db.close()


@celery_app.task(base=EmailTask, bind=True)
def send_order_confirmation(self, order_id: int):
    _send_order_email(self, order_id, "Order Confirmed", templates.order_confirmation_template)


@celery_app.task(base=EmailTask, bind=True)
def send_order_shipped(self, order_id: int):
    _send_order_email(self, order_id, "Order Shipped", templates.order_shipped_template)


@celery_app.task(base=EmailTask, bind=True)
def send_order_completed(self, order_id: int):
    _send_order_email(self, order_id, "Order Completed", templates.order_completed_template)


# -------------------------------
# Contact
# -------------------------------
def _load_contact(db, contact_id: int):
    from tirestore.models.contact import ContactMessage

    return db.query(ContactMessage).filter(ContactMessage.id == contact_id).first()


@celery_app.task(base=EmailTask, bind=True)
def send_contact_confirmation(self, contact_id: int):
    db = SessionLocal()
    try:
        contact = _load_contact(db, contact_id)
        if not contact:
            return
        msg = build_email(
            to=contact.email,
            subject="We received your message",
            text="Thanks for contacting us. We will reply shortly.",
            html=templates.contact_confirmation_template(contact),
        )
        _send_email_smtp(msg)
        logger.info("contact_confirmation_sent contact_id=%s", contact_id)
    except Exception as exc:
        logger.exception("contact_confirmation_error contact_id=%s", contact_id)
        raise self.retry(exc=exc)
    finally:
        db.close()


@celery_app.task(base=EmailTask, bind=True)
def send_contact_admin_notification(self, contact_id: int):
    if not settings.ADMIN_EMAIL:
        logger.warning("admin_email_not_configured contact_id=%s", contact_id)
        return

    db = SessionLocal()
    try:
        contact = _load_contact(db, contact_id)
        if not contact:
            return
        msg = build_email(
            to=settings.ADMIN_EMAIL,
            subject=f"New {contact.inquiry_type} inquiry: {contact.subject}",
            text=f"{contact.name} <{contact.email}> wrote: {contact.message}",
            html=templates.contact_admin_notification_template(contact),
        )
        _send_email_smtp(msg)
        logger.info("contact_admin_notification_sent contact_id=%s", contact_id)
    except Exception as exc:
        logger.exception("contact_admin_notification_error contact_id=%s", contact_id)
        raise self.retry(exc=exc)
    finally:
        db.close()


@celery_app.task(base=EmailTask, bind=True)
def send_contact_reply(self, contact_id: int, reply_message: str):
    db = SessionLocal()
    try:
        contact = _load_contact(db, contact_id)
        if not contact:
            return
        msg = build_email(
            to=contact.email,
            subject=f"Re: {contact.subject}",
            text=reply_message,
            html=templates.contact_reply_template(contact, reply_message),
        )
        _send_email_smtp(msg)
        logger.info("contact_reply_sent contact_id=%s", contact_id)
    except Exception as exc:
        logger.exception("contact_reply_error contact_id=%s", contact_id)
        raise self.retry(exc=exc)
    finally:
        db.close()


# -------------------------------
# Newsletter
# -------------------------------
@celery_app.task(base=EmailTask, bind=True)
def send_newsletter_welcome(self, email: str, name: Optional[str] = None):
    try:
        msg = build_email(
            to=email,
            subject="Welcome to our newsletter",
            text="Thanks for subscribing to our newsletter.",
            html=templates.newsletter_welcome_template(name),
        )
        _send_email_smtp(msg)
        logger.info("newsletter_welcome_sent email=%s", email)
    except Exception as exc:
        logger.exception("newsletter_welcome_error email=%s", email)
        raise self.retry(exc=exc)


@celery_app.task(base=EmailTask, bind=True)
def send_campaign_email(self, campaign_id: int, email: str):
    from tirestore.models.newsletter import NewsletterCampaign, NewsletterSubscription

    db = SessionLocal()
    try:
        campaign = db.query(NewsletterCampaign).filter(NewsletterCampaign.id == campaign_id).first()
        if not campaign:
            return
        products = [link.product for link in campaign.products if link.product is not None]
        msg = build_email(
            to=email,
            subject=campaign.subject,
            text=f"{campaign.title}\n\nUnsubscribe: {templates.unsubscribe_link(email)}",
            html=templates.campaign_template(campaign, email, products),
        )
        _send_email_smtp(msg)

        subscription = (
            db.query(NewsletterSubscription).filter(NewsletterSubscription.email == email).first()
        )
        if subscription:
            subscription.last_email_sent = datetime.utcnow()
            db.commit()
        logger.info("campaign_email_sent campaign_id=%s email=%s", campaign_id, email)
    except Exception as exc:
        db.rollback()
        logger.exception("campaign_email_error campaign_id=%s email=%s", campaign_id, email)
        raise self.retry(exc=exc)
    finally:
        db.close()
