from typing import List, Literal, Optional

from pydantic import EmailStr, Field, field_validator

from tirestore.schemas.base import CamelModel, strip_tags

InquiryType = Literal["general", "quote", "appointment", "warranty", "complaint", "support"]
ContactStatus = Literal["pending", "in-progress", "resolved", "closed"]


class ContactCreate(CamelModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=20, pattern=r"^[0-9+()\-\s]*$")
    subject: str = Field(..., min_length=5, max_length=200)
    message: str = Field(..., min_length=10, max_length=2000)
    inquiry_type: InquiryType = "general"

    @field_validator("name", "subject", "message")
    @classmethod
    def sanitize_text(cls, value: str) -> str:
        return strip_tags(value)


class ContactUpdate(CamelModel):
    status: Optional[ContactStatus] = None
    admin_response: Optional[str] = Field(None, max_length=5000)


class ContactReply(CamelModel):
    message: str = Field(..., min_length=1, max_length=5000)
    mark_resolved: bool = True


class NewsletterSubscribe(CamelModel):
    email: EmailStr
    name: Optional[str] = Field(None, max_length=100)
    source: str = Field("website", max_length=50)
    tags: Optional[List[str]] = None


class NewsletterUnsubscribe(CamelModel):
    email: EmailStr
