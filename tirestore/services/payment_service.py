"""
Stripe payment intents and their materialization into orders.

Amounts are always priced from the catalog; client-side prices are ignored.
An order is created at most once per payment intent id, whichever of the
webhook or the explicit create-order call arrives first.
"""

import json
import random
import time
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Sequence, Tuple

import stripe
import structlog
from sqlalchemy import case, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tirestore.core.config import settings
from tirestore.core.exceptions import UpstreamError, ValidationError
from tirestore.models.order import Order, OrderItem, OrderStatus, PaymentStatus
from tirestore.models.product import Product, ProductStatus

logger = structlog.get_logger()

CENTS = Decimal("100")


@dataclass
class PricedLine:
    product: Product
    quantity: int

    @property
    def unit_price(self) -> Decimal:
        return Decimal(self.product.price)

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity


def _configure() -> None:
    stripe.api_key = settings.STRIPE_SECRET_KEY


def to_cents(amount: Decimal) -> int:
    return int((amount * CENTS).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def generate_order_number() -> str:
    return f"ORD-{int(time.time() * 1000)}-{random.randint(0, 9999):04d}"


class PaymentService:

    @staticmethod
    def price_cart(db: Session, cart: Sequence[Tuple[int, int]]) -> Tuple[List[PricedLine], Decimal]:
        """Resolve (product_id, quantity) pairs against published products."""
        quantities: Dict[int, int] = {}
        for product_id, quantity in cart:
            if quantity > 0:
                quantities[product_id] = quantities.get(product_id, 0) + quantity
        if not quantities:
            raise ValidationError("Cart is empty or invalid.")

        products = {
            product.id: product
            for product in db.query(Product).filter(
                Product.id.in_(list(quantities)),
                Product.status == ProductStatus.PUBLISHED.value,
            )
        }
        missing = [product_id for product_id in quantities if product_id not in products]
        if missing:
            raise ValidationError(
                "Some products are no longer available",
                errors=[{"code": "product_unavailable", "productIds": missing}],
            )

        lines = []
        for product_id, quantity in quantities.items():
            product = products[product_id]
            if product.stock < quantity:
                raise ValidationError(
                    f"Insufficient stock for {product.name}",
                    errors=[{"code": "insufficient_stock", "productId": product_id, "available": product.stock}],
                )
            lines.append(PricedLine(product=product, quantity=quantity))

        subtotal = sum((line.total_price for line in lines), Decimal("0"))
        return lines, subtotal

    @staticmethod
    def create_payment_intent(
        db: Session,
        cart: Sequence[Tuple[int, int]],
        user_id: Optional[int],
        user_email: str,
        user_name: str,
        shipping_address: Dict[str, Any],
        billing_address: Optional[Dict[str, Any]],
    ) -> dict:
        lines, subtotal = PaymentService.price_cart(db, cart)
        amount = to_cents(subtotal)
        if amount <= 0:
            raise ValidationError("Order total must be greater than zero.")

        metadata = {
            "userId": str(user_id) if user_id else "",
            "userEmail": user_email,
            "userName": user_name,
            # Compact [[id, qty], ...] keeps the value under Stripe's 500 character limit
            "cart": json.dumps([[line.product.id, line.quantity] for line in lines], separators=(",", ":")),
            "shippingAddress": json.dumps(shipping_address or {}, separators=(",", ":")),
            "billingAddress": json.dumps(billing_address or shipping_address or {}, separators=(",", ":")),
        }

        _configure()
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=settings.STRIPE_CURRENCY,
                metadata=metadata,
                receipt_email=user_email,
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as exc:
            logger.error("stripe_payment_intent_failed", error=str(exc), amount=amount)
            raise UpstreamError("Payment provider error. Please try again.") from exc

        logger.info("payment_intent_created", payment_intent_id=intent["id"], amount=amount)
        return {
            "clientSecret": intent["client_secret"],
            "paymentIntentId": intent["id"],
            "amount": amount,
            "currency": settings.STRIPE_CURRENCY,
        }

    @staticmethod
    def retrieve_intent(payment_intent_id: str):
        _configure()
        try:
            return stripe.PaymentIntent.retrieve(payment_intent_id)
        except stripe.InvalidRequestError as exc:
            raise ValidationError("Unknown payment intent") from exc
        except stripe.StripeError as exc:
            logger.error("stripe_payment_intent_retrieve_failed", error=str(exc))
            raise UpstreamError("Payment provider error. Please try again.") from exc

    @staticmethod
    def construct_event(payload: bytes, signature: Optional[str]):
        try:
            return stripe.Webhook.construct_event(payload, signature, settings.STRIPE_WEBHOOK_SECRET)
        except ValueError as exc:
            raise ValidationError("Invalid webhook payload") from exc
        except stripe.SignatureVerificationError as exc:
            logger.warning("stripe_webhook_bad_signature")
            raise ValidationError("Invalid webhook signature") from exc

    @staticmethod
    def _parse_json(raw: Optional[str], default):
        if not raw:
            return default
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("stripe_metadata_unparseable", value=raw[:100])
            return default

    @staticmethod
    def _metadata_cart(metadata: Dict[str, Any]) -> List[Tuple[int, int]]:
        cart = []
        for entry in PaymentService._parse_json(metadata.get("cart"), []):
            if isinstance(entry, dict):
                cart.append((int(entry["id"]), int(entry.get("quantity", 1))))
            else:
                cart.append((int(entry[0]), int(entry[1])))
        return cart

    @staticmethod
    def find_order(db: Session, payment_intent_id: str) -> Optional[Order]:
        return db.query(Order).filter(Order.payment_intent_id == payment_intent_id).first()

    @staticmethod
    def _decrement_stock(db: Session, product: Product, quantity: int, intent_id: str) -> None:
        """Subtract in SQL so concurrent orders for the same tire both count.

        The customer has already been charged, so a shortfall is logged for
        the shop to resolve and stock bottoms out at zero.
        """
        if (product.stock or 0) < quantity:
            logger.warning(
                "stock_oversold",
                payment_intent_id=intent_id,
                product_id=product.id,
                stock=product.stock,
                quantity=quantity,
            )
        db.execute(
            update(Product)
            .where(Product.id == product.id)
            .values(stock=case((Product.stock >= quantity, Product.stock - quantity), else_=0))
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    def materialize_order(
        db: Session,
        intent,
        fallback_cart: Sequence[Tuple[int, int]] = (),
        fallback: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Order, bool]:
        """Create the order for a succeeded intent. Returns (order, created)."""
        intent_id = intent["id"]
        existing = PaymentService.find_order(db, intent_id)
        if existing:
            return existing, False

        metadata = dict(intent.get("metadata") or {})
        fallback = fallback or {}
        cart = PaymentService._metadata_cart(metadata) or list(fallback_cart)
        product_ids = [product_id for product_id, _ in cart]
        products = {}
        if product_ids:
            # Row locks plus a fresh read; a session may already hold stale copies of these products
            locked = (
                db.query(Product)
                .filter(Product.id.in_(product_ids))
                .populate_existing()
                .with_for_update()
            )
            products = {p.id: p for p in locked}

        paid = Decimal(intent["amount"]) / CENTS
        user_id = metadata.get("userId") or fallback.get("user_id")
        order = Order(
            order_number=generate_order_number(),
            payment_intent_id=intent_id,
            user_id=int(user_id) if user_id else None,
            user_email=metadata.get("userEmail") or fallback.get("user_email") or intent.get("receipt_email") or "",
            user_name=metadata.get("userName") or fallback.get("user_name") or "",
            status=OrderStatus.PROCESSING.value,
            payment_status=PaymentStatus.PAID.value,
            subtotal=paid,
            tax=Decimal("0"),
            shipping=Decimal("0"),
            total=paid,
            shipping_address=PaymentService._parse_json(metadata.get("shippingAddress"), None)
            or fallback.get("shipping_address"),
            billing_address=PaymentService._parse_json(metadata.get("billingAddress"), None)
            or fallback.get("billing_address"),
        )

        for product_id, quantity in cart:
            product = products.get(product_id)
            if product is None:
                logger.warning("order_item_product_missing", payment_intent_id=intent_id, product_id=product_id)
                continue
            unit_price = Decimal(product.price)
            order.items.append(
                OrderItem(
                    product_id=product.id,
                    product_name=product.name,
                    product_size=product.size,
                    product_sku=product.sku or f"SKU-{product.id}",
                    quantity=quantity,
                    unit_price=unit_price,
                    total_price=unit_price * quantity,
                )
            )
            PaymentService._decrement_stock(db, product, quantity, intent_id)

        db.add(order)
        try:
            db.commit()
        except IntegrityError:
            # Lost a race with the other materialization path
            db.rollback()
            existing = PaymentService.find_order(db, intent_id)
            if existing is None:
                raise
            return existing, False

        db.refresh(order)
        logger.info(
            "order_materialized",
            order_id=order.id,
            order_number=order.order_number,
            payment_intent_id=intent_id,
            items=len(order.items),
        )
        return order, True

    @staticmethod
    def mark_failed(db: Session, intent) -> Optional[Order]:
        order = PaymentService.find_order(db, intent["id"])
        if order is None:
            logger.info("payment_failed_without_order", payment_intent_id=intent["id"])
            return None
        order.payment_status = PaymentStatus.FAILED.value
        db.commit()
        logger.warning("order_payment_failed", order_id=order.id, payment_intent_id=intent["id"])
        return order
