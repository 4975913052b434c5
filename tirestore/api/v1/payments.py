from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from tirestore.api.deps import get_optional_user
from tirestore.core.exceptions import ValidationError
from tirestore.core.rate_limiter import group_limit, limiter
from tirestore.db.session import get_db
from tirestore.models.user import User
from tirestore.schemas.order import CheckoutRequest, CreateOrderRequest
from tirestore.services.payment_service import PaymentService
from tirestore.tasks.email_tasks import send_order_confirmation
from tirestore.utils import email as mailer
from tirestore.utils.response import success
from tirestore.utils.serializers import order_to_dict

router = APIRouter()
logger = structlog.get_logger()


@router.post(
    "/create-payment-intent",
    response_model=dict,
    summary="Create Stripe payment intent",
    description="""
Prices the submitted cart from the catalog and creates a Stripe PaymentIntent.

Client-side prices are ignored. The cart is stored on the intent metadata so
the webhook can build the order once the payment succeeds.
""",
    responses={
        200: {"description": "Intent created"},
        400: {"description": "Empty cart, unavailable product or insufficient stock"},
        502: {"description": "Stripe unavailable"},
    },
)
@limiter.limit(group_limit("payment"))
def create_payment_intent(
    request: Request,
    payload: CheckoutRequest,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    result = PaymentService.create_payment_intent(
        db,
        cart=[(line.id, line.quantity) for line in payload.cart],
        user_id=current_user.id if current_user else None,
        user_email=payload.user_email,
        user_name=payload.user_name,
        shipping_address=payload.shipping_address,
        billing_address=payload.billing_address,
    )
    return success(data=result, message="Payment intent created")


@router.post("/create-order", response_model=dict)
@limiter.limit(group_limit("payment"))
def create_order(
    request: Request,
    payload: CreateOrderRequest,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    existing = PaymentService.find_order(db, payload.payment_intent_id)
    if existing:
        return success(data=order_to_dict(existing), message="Order already exists")

    intent = PaymentService.retrieve_intent(payload.payment_intent_id)
    if intent["status"] != "succeeded":
        raise ValidationError(
            "Payment has not been completed",
            errors=[{"code": "payment_incomplete", "paymentStatus": intent["status"]}],
        )

    order, created = PaymentService.materialize_order(
        db,
        intent,
        fallback_cart=[(line.id, line.quantity) for line in payload.cart],
        fallback={
            "user_id": current_user.id if current_user else None,
            "user_email": payload.user_email,
            "user_name": payload.user_name,
            "shipping_address": payload.shipping_address,
            "billing_address": payload.billing_address or payload.shipping_address,
        },
    )
    if not created:
        return success(data=order_to_dict(order), message="Order already exists")

    mailer.enqueue(send_order_confirmation, order.id)
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content=success(data=order_to_dict(order), message="Order created"),
    )


@router.post("/webhook/stripe")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """Handle Stripe webhooks; the raw body is needed for signature verification."""
    payload = await request.body()
    event = PaymentService.construct_event(payload, request.headers.get("stripe-signature"))

    event_type = event["type"]
    intent = event["data"]["object"]
    logger.info("stripe_webhook_received", event_type=event_type, event_id=event.get("id"))

    if event_type == "payment_intent.succeeded":
        order, created = PaymentService.materialize_order(db, intent)
        if created:
            mailer.enqueue(send_order_confirmation, order.id)
        else:
            logger.info("stripe_webhook_duplicate", payment_intent_id=intent["id"], order_id=order.id)
    elif event_type == "payment_intent.payment_failed":
        PaymentService.mark_failed(db, intent)
    else:
        logger.debug("stripe_webhook_ignored", event_type=event_type)

    return {"received": True}
