from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from tirestore.api.deps import client_ip, get_optional_user, require_admin
from tirestore.core.config import settings
from tirestore.core.exceptions import NotFoundError, ValidationError
from tirestore.db.session import get_db
from tirestore.models.contact import ContactMessage
from tirestore.models.newsletter import NewsletterSubscription
from tirestore.models.user import User
from tirestore.schemas.contact import ContactCreate, ContactStatus, ContactUpdate, NewsletterSubscribe, NewsletterUnsubscribe
from tirestore.tasks.email_tasks import (
    send_contact_admin_notification,
    send_contact_confirmation,
    send_newsletter_welcome,
)
from tirestore.utils import email as mailer
from tirestore.utils.response import paginated_response, success
from tirestore.utils.serializers import contact_to_dict, subscription_to_dict

router = APIRouter()
logger = structlog.get_logger()

WEEKDAY_HOURS = {"open": "08:00", "close": "18:00"}

STORE_INFO = {
    "store": {
        "name": settings.EMAILS_FROM_NAME,
        "address": {
            "street": "123 Tire Street",
            "city": "Amsterdam",
            "country": "Netherlands",
            "postalCode": "1234 AB",
        },
        "coordinates": {"latitude": 52.3676, "longitude": 4.9041},
    },
    "contact": {
        "phone": "+31 20 123 4567",
        "email": settings.SUPPORT_EMAIL,
    },
    "businessHours": {
        "monday": WEEKDAY_HOURS,
        "tuesday": WEEKDAY_HOURS,
        "wednesday": WEEKDAY_HOURS,
        "thursday": WEEKDAY_HOURS,
        "friday": WEEKDAY_HOURS,
        "saturday": {"open": "08:00", "close": "16:00"},
        "sunday": {"closed": True},
    },
    "services": [
        "Tire Installation",
        "Wheel Balancing",
        "Alignment Services",
        "Tire Repair",
        "Tire Storage",
    ],
}

FAQS = [
    {
        "id": 1,
        "question": "What tire sizes do you have in stock?",
        "answer": "We stock a wide range of sizes for cars and SUVs. Use the size filter in the shop or contact us for availability.",
        "category": "products",
    },
    {
        "id": 2,
        "question": "Do you offer tire installation?",
        "answer": "Yes, we provide professional installation, balancing and alignment. Installation is included with tire purchases.",
        "category": "services",
    },
    {
        "id": 3,
        "question": "What are your business hours?",
        "answer": "Monday to Friday 8:00-18:00, Saturday 8:00-16:00, closed on Sunday.",
        "category": "general",
    },
    {
        "id": 4,
        "question": "Do you offer warranties on tires?",
        "answer": "All tires come with the manufacturer warranty.",
        "category": "warranty",
    },
    {
        "id": 5,
        "question": "Can you store my seasonal tires?",
        "answer": "Yes, we offer storage for seasonal tires. Contact us for pricing.",
        "category": "services",
    },
]


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
@router.post("/", response_model=dict, status_code=status.HTTP_201_CREATED)
def submit_contact(
    request: Request,
    payload: ContactCreate,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    contact = ContactMessage(
        name=payload.name,
        email=payload.email.lower(),
        phone=payload.phone or None,
        subject=payload.subject,
        message=payload.message,
        inquiry_type=payload.inquiry_type,
        status="pending",
        client_ip=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        user_id=current_user.id if current_user else None,
    )
    db.add(contact)
    db.commit()
    db.refresh(contact)

    logger.info("contact_message_received", contact_id=contact.id, inquiry_type=contact.inquiry_type)
    mailer.enqueue(send_contact_confirmation, contact.id)
    mailer.enqueue(send_contact_admin_notification, contact.id)

    return success(
        data={"id": contact.id, "status": contact.status, "createdAt": contact.created_at},
        message="Thank you for your message. We will get back to you soon.",
    )


@router.post("/newsletter", response_model=dict, status_code=status.HTTP_201_CREATED)
def subscribe_newsletter(payload: NewsletterSubscribe, db: Session = Depends(get_db)):
    email = payload.email.lower()
    subscription = db.query(NewsletterSubscription).filter(NewsletterSubscription.email == email).first()

    if subscription and subscription.status == "active":
        raise ValidationError("This email is already subscribed to our newsletter.")

    if subscription:
        subscription.status = "active"
        subscription.name = payload.name or subscription.name
        subscription.subscribed_at = datetime.utcnow()
        subscription.unsubscribed_at = None
        db.commit()
        db.refresh(subscription)
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=success(
                data=subscription_to_dict(subscription),
                message="Successfully reactivated your newsletter subscription!",
            ),
        )

    subscription = NewsletterSubscription(
        email=email,
        name=payload.name,
        source=payload.source,
        tags=payload.tags,
    )
    db.add(subscription)
    db.commit()
    db.refresh(subscription)

    logger.info("newsletter_subscribed", subscription_id=subscription.id, source=subscription.source)
    mailer.enqueue(send_newsletter_welcome, subscription.email, subscription.name)
    return success(data=subscription_to_dict(subscription), message="Successfully subscribed to our newsletter!")


@router.post("/unsubscribe", response_model=dict)
def unsubscribe_newsletter(payload: NewsletterUnsubscribe, db: Session = Depends(get_db)):
    subscription = (
        db.query(NewsletterSubscription)
        .filter(NewsletterSubscription.email == payload.email.lower())
        .first()
    )
    if not subscription:
        raise NotFoundError("Subscription not found")

    if subscription.status != "unsubscribed":
        subscription.status = "unsubscribed"
        subscription.unsubscribed_at = datetime.utcnow()
        db.commit()
        logger.info("newsletter_unsubscribed", subscription_id=subscription.id)
    return success(message="You have been unsubscribed from our newsletter.")


@router.get("/info", response_model=dict)
def store_info():
    return success(data=STORE_INFO)


@router.get("/faqs", response_model=dict)
def faqs():
    return success(data=FAQS)


@router.get("/messages", response_model=dict)
def list_messages(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    message_status: Optional[ContactStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    query = db.query(ContactMessage)
    if message_status:
        query = query.filter(ContactMessage.status == message_status)
    total = query.count()
    messages = (
        query.order_by(ContactMessage.created_at.desc(), ContactMessage.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return paginated_response([contact_to_dict(m) for m in messages], total, page, limit, message="Messages retrieved")


@router.put("/messages/{message_id}", response_model=dict)
def update_message(
    message_id: int,
    payload: ContactUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    contact = db.query(ContactMessage).filter(ContactMessage.id == message_id).first()
    if not contact:
        raise NotFoundError("Message not found")

    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(contact, field, value)
    db.commit()
    db.refresh(contact)
    return success(data=contact_to_dict(contact), message="Message updated")
