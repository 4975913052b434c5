from typing import Any, Dict, List, Literal, Optional

from pydantic import EmailStr, Field, field_validator

from tirestore.schemas.base import CamelModel, strip_tags

OrderStatusValue = Literal["pending", "processing", "shipped", "completed", "cancelled"]
PaymentStatusValue = Literal["pending", "paid", "failed", "refunded"]


class OrderUpdate(CamelModel):
    status: Optional[OrderStatusValue] = None
    payment_status: Optional[PaymentStatusValue] = None
    tracking_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=2000)

    @field_validator("notes")
    @classmethod
    def sanitize_notes(cls, value: Optional[str]) -> Optional[str]:
        return strip_tags(value)


class CartLine(CamelModel):
    id: int
    quantity: int = Field(..., ge=1, le=100)


class CheckoutRequest(CamelModel):
    cart: List[CartLine] = Field(default_factory=list)
    user_email: EmailStr
    user_name: str = Field(..., min_length=1, max_length=255)
    shipping_address: Dict[str, Any]
    billing_address: Optional[Dict[str, Any]] = None


class CreateOrderRequest(CheckoutRequest):
    payment_intent_id: str = Field(..., min_length=1, max_length=255)
