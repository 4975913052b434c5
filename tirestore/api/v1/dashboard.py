from datetime import datetime, timedelta
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from tirestore.api.deps import require_admin
from tirestore.core.exceptions import NotFoundError, OrderNotFound, ValidationError
from tirestore.core.security import issue_reset_token
from tirestore.db.session import get_db
from tirestore.models.contact import ContactMessage
from tirestore.models.newsletter import CampaignProduct, CampaignType, NewsletterCampaign, NewsletterSubscription
from tirestore.models.order import Order, OrderItem
from tirestore.models.product import Product
from tirestore.models.user import User
from tirestore.schemas.contact import ContactReply, ContactStatus, ContactUpdate, InquiryType
from tirestore.schemas.dashboard import BulkEmailRequest, CampaignCreate, SubscriptionUpdate
from tirestore.tasks.email_tasks import (
    send_campaign_email,
    send_contact_admin_notification,
    send_contact_confirmation,
    send_contact_reply,
    send_email_task,
    send_newsletter_welcome,
    send_order_confirmation,
    send_password_reset,
)
from tirestore.utils import email as mailer
from tirestore.utils.email_templates import bulk_email_template
from tirestore.utils.response import paginated_response, success
from tirestore.utils.serializers import (
    campaign_to_dict,
    contact_to_dict,
    money,
    order_to_dict,
    product_summary,
    subscription_to_dict,
)

router = APIRouter()
logger = structlog.get_logger()

BULK_EMAIL_BATCH_SIZE = 10
CRITICAL_STOCK = 2


def _get_contact(db: Session, contact_id: int) -> ContactMessage:
    contact = db.query(ContactMessage).filter(ContactMessage.id == contact_id).first()
    if not contact:
        raise NotFoundError("Contact not found")
    return contact


def _get_subscription(db: Session, subscription_id: int) -> NewsletterSubscription:
    subscription = db.query(NewsletterSubscription).filter(NewsletterSubscription.id == subscription_id).first()
    if not subscription:
        raise NotFoundError("Subscription not found")
    return subscription


def _get_campaign(db: Session, campaign_id: int) -> NewsletterCampaign:
    campaign = (
        db.query(NewsletterCampaign)
        .options(selectinload(NewsletterCampaign.products).selectinload(CampaignProduct.product))
        .filter(NewsletterCampaign.id == campaign_id)
        .first()
    )
    if not campaign:
        raise NotFoundError("Campaign not found")
    return campaign


def _queued(sent: bool, message: str) -> dict:
    if not sent:
        raise ValidationError("Email could not be queued. Please try again later.")
    return success(message=message)


# -------------------------------
# Overview
# -------------------------------
@router.get("/overview", response_model=dict)
def overview(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    week_ago = datetime.utcnow() - timedelta(days=7)

    total_revenue = db.query(func.coalesce(func.sum(Order.total), 0)).scalar()
    recent_revenue = (
        db.query(func.coalesce(func.sum(Order.total), 0)).filter(Order.created_at >= week_ago).scalar()
    )

    contacts_by_type = {
        inquiry_type: count
        for inquiry_type, count in db.query(ContactMessage.inquiry_type, func.count(ContactMessage.id))
        .group_by(ContactMessage.inquiry_type)
    }

    sold = func.sum(OrderItem.quantity).label("total_sold")
    best_sellers = (
        db.query(Product, sold)
        .join(OrderItem, OrderItem.product_id == Product.id)
        .group_by(Product.id)
        .order_by(sold.desc())
        .limit(5)
        .all()
    )

    data = {
        "totals": {
            "users": db.query(func.count(User.id)).scalar(),
            "orders": db.query(func.count(Order.id)).scalar(),
            "products": db.query(func.count(Product.id)).scalar(),
            "revenue": money(total_revenue),
            "contacts": db.query(func.count(ContactMessage.id)).scalar(),
            "subscriptions": db.query(func.count(NewsletterSubscription.id)).scalar(),
            "activeSubscriptions": db.query(func.count(NewsletterSubscription.id))
            .filter(NewsletterSubscription.status == "active")
            .scalar(),
        },
        "recent": {
            "users": db.query(func.count(User.id)).filter(User.created_at >= week_ago).scalar(),
            "orders": db.query(func.count(Order.id)).filter(Order.created_at >= week_ago).scalar(),
            "revenue": money(recent_revenue),
            "contacts": db.query(func.count(ContactMessage.id)).filter(ContactMessage.created_at >= week_ago).scalar(),
            "subscriptions": db.query(func.count(NewsletterSubscription.id))
            .filter(NewsletterSubscription.subscribed_at >= week_ago)
            .scalar(),
        },
        "pendingContacts": db.query(func.count(ContactMessage.id))
        .filter(ContactMessage.status == "pending")
        .scalar(),
        "contactsByType": contacts_by_type,
        "bestSellingProducts": [
            {**product_summary(product), "totalSold": int(total or 0)} for product, total in best_sellers
        ],
    }
    return success(data=data, message="Dashboard overview retrieved")


@router.get("/recent-orders", response_model=dict)
def recent_orders(
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    orders = (
        db.query(Order)
        .options(selectinload(Order.items))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .all()
    )
    return success(data=[order_to_dict(o) for o in orders])


@router.get("/low-stock", response_model=dict)
def low_stock(
    threshold: int = Query(10, ge=0),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    products = (
        db.query(Product)
        .options(selectinload(Product.images))
        .filter(Product.stock <= threshold)
        .order_by(Product.stock.asc(), Product.id.asc())
        .all()
    )
    items = [
        {**product_summary(p), "severity": "critical" if p.stock <= CRITICAL_STOCK else "low"}
        for p in products
    ]
    return success(data=items, meta={"threshold": threshold, "count": len(items)})


# -------------------------------
# Contacts
# -------------------------------
@router.get("/contacts", response_model=dict)
def list_contacts(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    contact_status: Optional[ContactStatus] = Query(None, alias="status"),
    inquiry_type: Optional[InquiryType] = Query(None, alias="inquiryType"),
    search: Optional[str] = Query(None, max_length=100),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    query = db.query(ContactMessage)
    if contact_status:
        query = query.filter(ContactMessage.status == contact_status)
    if inquiry_type:
        query = query.filter(ContactMessage.inquiry_type == inquiry_type)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(
            ContactMessage.name.ilike(term) | ContactMessage.email.ilike(term) | ContactMessage.subject.ilike(term)
        )

    total = query.count()
    contacts = (
        query.order_by(ContactMessage.created_at.desc(), ContactMessage.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return paginated_response([contact_to_dict(c) for c in contacts], total, page, limit, message="Contacts retrieved")


@router.put("/contacts/{contact_id}", response_model=dict)
def update_contact(
    contact_id: int,
    payload: ContactUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    contact = _get_contact(db, contact_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(contact, field, value)
    db.commit()
    db.refresh(contact)
    return success(data=contact_to_dict(contact), message="Contact updated")


@router.post("/contacts/{contact_id}/reply", response_model=dict)
def reply_to_contact(
    contact_id: int,
    payload: ContactReply,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    contact = _get_contact(db, contact_id)
    contact.admin_response = payload.message
    contact.status = "resolved" if payload.mark_resolved else "in-progress"
    db.commit()
    db.refresh(contact)

    queued = mailer.enqueue(send_contact_reply, contact.id, payload.message)
    logger.info("contact_replied", contact_id=contact.id, admin_id=admin.id, queued=queued)
    return success(data=contact_to_dict(contact), message="Reply sent" if queued else "Reply saved, email not queued")


@router.delete("/contacts/{contact_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_contact(contact_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    db.delete(_get_contact(db, contact_id))
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/contacts/{contact_id}/resend-confirmation", response_model=dict)
def resend_contact_confirmation(
    contact_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    contact = _get_contact(db, contact_id)
    return _queued(mailer.enqueue(send_contact_confirmation, contact.id), "Confirmation email queued")


@router.post("/contacts/{contact_id}/notify-admin", response_model=dict)
def resend_admin_notification(
    contact_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    contact = _get_contact(db, contact_id)
    return _queued(mailer.enqueue(send_contact_admin_notification, contact.id), "Admin notification queued")


# -------------------------------
# Newsletter subscriptions
# -------------------------------
@router.get("/subscriptions", response_model=dict)
def list_subscriptions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    subscription_status: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = Query(None, max_length=100),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    query = db.query(NewsletterSubscription)
    if subscription_status and subscription_status != "all":
        query = query.filter(NewsletterSubscription.status == subscription_status)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(NewsletterSubscription.email.ilike(term) | NewsletterSubscription.name.ilike(term))

    total = query.count()
    subscriptions = (
        query.order_by(NewsletterSubscription.subscribed_at.desc(), NewsletterSubscription.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return paginated_response(
        [subscription_to_dict(s) for s in subscriptions], total, page, limit, message="Subscriptions retrieved"
    )


@router.put("/subscriptions/{subscription_id}", response_model=dict)
def update_subscription(
    subscription_id: int,
    payload: SubscriptionUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    subscription = _get_subscription(db, subscription_id)
    changes = payload.model_dump(exclude_unset=True)

    if changes.get("status") and changes["status"] != subscription.status:
        subscription.status = changes["status"]
        if subscription.status == "unsubscribed":
            subscription.unsubscribed_at = datetime.utcnow()
        elif subscription.status == "active":
            subscription.unsubscribed_at = None
    if changes.get("name") is not None:
        subscription.name = changes["name"]
    if changes.get("tags") is not None:
        subscription.tags = changes["tags"]

    db.commit()
    db.refresh(subscription)
    return success(data=subscription_to_dict(subscription), message="Subscription updated")


@router.delete("/subscriptions/{subscription_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_subscription(
    subscription_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    db.delete(_get_subscription(db, subscription_id))
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/subscriptions/{subscription_id}/resend-welcome", response_model=dict)
def resend_welcome(
    subscription_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    subscription = _get_subscription(db, subscription_id)
    if subscription.status != "active":
        raise ValidationError("Subscription is not active")
    return _queued(
        mailer.enqueue(send_newsletter_welcome, subscription.email, subscription.name),
        "Welcome email queued",
    )


@router.post("/subscriptions/send-email", response_model=dict)
def send_bulk_email(
    payload: BulkEmailRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    query = db.query(NewsletterSubscription).filter(NewsletterSubscription.status == "active")
    if payload.emails:
        query = query.filter(NewsletterSubscription.email.in_([e.lower() for e in payload.emails]))
    recipients = query.order_by(NewsletterSubscription.id.asc()).all()
    if not recipients:
        raise ValidationError("No active subscribers found")

    success_count = 0
    failure_count = 0
    now = datetime.utcnow()
    for start in range(0, len(recipients), BULK_EMAIL_BATCH_SIZE):
        for subscription in recipients[start:start + BULK_EMAIL_BATCH_SIZE]:
            queued = mailer.enqueue(
                send_email_task,
                subscription.email,
                payload.subject,
                payload.content,
                bulk_email_template(payload.subject, payload.content, subscription.email),
            )
            if queued:
                subscription.last_email_sent = now
                success_count += 1
            else:
                failure_count += 1
        db.commit()

    logger.info(
        "bulk_email_queued",
        admin_id=admin.id,
        recipients=len(recipients),
        queued=success_count,
        failed=failure_count,
    )
    return success(
        data={
            "totalRecipients": len(recipients),
            "successCount": success_count,
            "failureCount": failure_count,
        },
        message=f"Email queued for {success_count} subscribers",
    )


# -------------------------------
# Account & order re-sends
# -------------------------------
@router.post("/users/{user_id}/resend-password-reset", response_model=dict)
def resend_password_reset(user_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")

    token = issue_reset_token(user)
    db.commit()
    logger.info("password_reset_resent", user_id=user.id, admin_id=admin.id)
    return _queued(mailer.enqueue(send_password_reset, user.email, user.name, token), "Password reset email queued")


@router.post("/orders/{order_id}/resend-confirmation", response_model=dict)
def resend_order_confirmation(order_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise OrderNotFound()
    return _queued(mailer.enqueue(send_order_confirmation, order.id), "Order confirmation queued")


# -------------------------------
# Campaigns
# -------------------------------
@router.get("/campaigns", response_model=dict)
def list_campaigns(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    query = db.query(NewsletterCampaign)
    total = query.count()
    campaigns = (
        query.order_by(NewsletterCampaign.created_at.desc(), NewsletterCampaign.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return paginated_response([campaign_to_dict(c) for c in campaigns], total, page, limit, message="Campaigns retrieved")


@router.post("/campaigns", response_model=dict, status_code=status.HTTP_201_CREATED)
def create_campaign(payload: CampaignCreate, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    product_ids = list(dict.fromkeys(payload.product_ids))
    if payload.type == CampaignType.PRODUCT_CATALOG.value and not product_ids:
        raise ValidationError("Product catalog campaigns need at least one product")
    if product_ids:
        found = {row.id for row in db.query(Product.id).filter(Product.id.in_(product_ids))}
        missing = [pid for pid in product_ids if pid not in found]
        if missing:
            raise ValidationError("Some products do not exist", errors=[{"productIds": missing}])

    campaign = NewsletterCampaign(
        title=payload.title,
        subject=payload.subject,
        content=payload.content,
        campaign_type=payload.type,
        status="draft",
        created_by=admin.id,
    )
    campaign.products = [
        CampaignProduct(product_id=product_id, display_order=index) for index, product_id in enumerate(product_ids)
    ]
    db.add(campaign)
    db.commit()

    campaign = _get_campaign(db, campaign.id)
    logger.info("campaign_created", campaign_id=campaign.id, products=len(product_ids))
    return success(data=campaign_to_dict(campaign, with_products=True), message="Campaign created")


@router.get("/campaigns/{campaign_id}", response_model=dict)
def get_campaign(campaign_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return success(data=campaign_to_dict(_get_campaign(db, campaign_id), with_products=True))


@router.post("/campaigns/{campaign_id}/send", response_model=dict)
def send_campaign(campaign_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    campaign = _get_campaign(db, campaign_id)
    if campaign.status == "sent":
        raise ValidationError("Campaign has already been sent")

    emails = [
        row.email
        for row in db.query(NewsletterSubscription.email)
        .filter(NewsletterSubscription.status == "active")
        .order_by(NewsletterSubscription.id.asc())
    ]
    if not emails:
        raise ValidationError("No active subscribers found")

    queued = sum(1 for email in emails if mailer.enqueue(send_campaign_email, campaign.id, email))

    campaign.status = "sent"
    campaign.sent_at = datetime.utcnow()
    campaign.recipient_count = queued
    db.commit()
    db.refresh(campaign)

    logger.info("campaign_sent", campaign_id=campaign.id, recipients=len(emails), queued=queued)
    return success(
        data={**campaign_to_dict(campaign), "failedCount": len(emails) - queued},
        message=f"Campaign queued for {queued} subscribers",
    )


@router.delete("/campaigns/{campaign_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_campaign(campaign_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    db.delete(_get_campaign(db, campaign_id))
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
