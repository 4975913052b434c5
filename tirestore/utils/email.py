import smtplib
from email.message import EmailMessage
from typing import Optional

import structlog

from tirestore.core.config import settings

logger = structlog.get_logger()


def _send_email_smtp(msg: EmailMessage) -> None:
    """
    Send an email message over SMTP.
    This is intended to be called from Celery workers, not request handlers.
    """
    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30) as server:
        server.ehlo()
        server.starttls()
        server.ehlo()
        if settings.SMTP_USER and settings.SMTP_PASSWORD:
            server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
        server.send_message(msg)


def build_email(
    *,
    to: str,
    subject: str,
    text: str,
    html: Optional[str] = None,
    from_email: Optional[str] = None,
) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = from_email or f"{settings.EMAILS_FROM_NAME} <{settings.EMAILS_FROM_EMAIL}>"
    msg["To"] = to
    msg.set_content(text)

    if html:
        msg.add_alternative(html, subtype="html")

    return msg


def enqueue(task, *args) -> bool:
    """
    Queue a Celery email task without failing the calling request.

    Returns False when the broker rejected the message; the caller decides
    whether that is worth reporting to the client.
    """
    try:
        result = task.delay(*args)
    except Exception:
        logger.exception("email_queue_failed", task=task.name)
        return False

    logger.info("email_queued", task=task.name, task_id=result.id)
    return True


def send_email_async(to_email: str, subject: str, body: str, html: Optional[str] = None) -> bool:
    from tirestore.tasks.email_tasks import send_email_task

    return enqueue(send_email_task, to_email, subject, body, html)
