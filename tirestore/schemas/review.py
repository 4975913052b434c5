from pydantic import Field, field_validator
from typing import List, Literal, Optional

from tirestore.schemas.base import CamelModel, strip_tags


class ReviewCreate(CamelModel):
    product_id: int
    order_id: Optional[int] = None
    # Range is checked by the service so it answers 400 like the other business rules
    rating: int
    title: Optional[str] = Field(None, max_length=255)
    comment: Optional[str] = Field(None, max_length=2000)
    images: List[str] = Field(default_factory=list, max_length=5)

    @field_validator("title", "comment")
    @classmethod
    def sanitize_text(cls, value: Optional[str]) -> Optional[str]:
        return strip_tags(value)


class ReviewUpdate(CamelModel):
    rating: Optional[int] = None
    title: Optional[str] = Field(None, max_length=255)
    comment: Optional[str] = Field(None, max_length=2000)
    images: Optional[List[str]] = Field(None, max_length=5)

    @field_validator("title", "comment")
    @classmethod
    def sanitize_text(cls, value: Optional[str]) -> Optional[str]:
        return strip_tags(value)


class ReviewStatusUpdate(CamelModel):
    status: Literal["approved", "rejected"]
