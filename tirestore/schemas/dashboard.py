from typing import List, Literal, Optional

from pydantic import EmailStr, Field

from tirestore.schemas.base import CamelModel


class SubscriptionUpdate(CamelModel):
    status: Optional[Literal["active", "unsubscribed", "bounced"]] = None
    name: Optional[str] = Field(None, max_length=100)
    tags: Optional[List[str]] = None


class BulkEmailRequest(CamelModel):
    subject: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    emails: Optional[List[EmailStr]] = None


class CampaignCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    subject: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    type: Literal["general", "product_catalog", "promotional"] = "general"
    product_ids: List[int] = Field(default_factory=list)


class ResendEmailRequest(CamelModel):
    email: EmailStr


class ClearBlockRequest(CamelModel):
    email: Optional[str] = None
    ip_address: Optional[str] = None


class RateLimitConfig(CamelModel):
    window_ms: int = Field(..., ge=1000, le=24 * 60 * 60 * 1000)
    max: int = Field(..., ge=1, le=100000)
