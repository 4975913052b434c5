from typing import Literal, Optional

from pydantic import Field

from tirestore.schemas.base import CamelModel


class BannerCreate(CamelModel):
    type: Literal["image", "video"]
    src: str = Field(..., min_length=1, max_length=500)
    headline: Optional[str] = Field(None, max_length=255)
    subheadline: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    sort_order: int = 0
    is_active: bool = True


class BannerUpdate(CamelModel):
    type: Optional[Literal["image", "video"]] = None
    src: Optional[str] = Field(None, min_length=1, max_length=500)
    headline: Optional[str] = Field(None, max_length=255)
    subheadline: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None
