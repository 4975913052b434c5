from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field, field_validator

from tirestore.schemas.base import CamelModel, strip_tags

SeasonType = Literal["summer", "winter", "all-season"]
TireType = Literal[
    "passenger", "suv", "truck", "performance", "commercial",
    "touring", "off-road", "economy", "luxury",
]


class ProductImageIn(CamelModel):
    image_url: str = Field(..., max_length=500)
    alt_text: Optional[str] = Field(None, max_length=255)


class ProductFields(CamelModel):
    name: Optional[str] = Field(None, min_length=2, max_length=200)
    brand: Optional[str] = Field(None, min_length=2, max_length=100)
    model: Optional[str] = Field(None, min_length=2, max_length=100)
    size: Optional[str] = Field(None, max_length=50)
    sku: Optional[str] = Field(None, min_length=3, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    price: Optional[Decimal] = Field(None, ge=0)
    compare_price: Optional[Decimal] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    low_stock_threshold: Optional[int] = Field(None, ge=0)
    status: Optional[Literal["draft", "published", "hidden"]] = None
    featured: Optional[bool] = None

    tire_width: Optional[str] = Field(None, min_length=2, max_length=10)
    aspect_ratio: Optional[str] = Field(None, min_length=2, max_length=10)
    rim_diameter: Optional[str] = Field(None, min_length=1, max_length=10)
    load_index: Optional[str] = Field(None, min_length=1, max_length=10)
    speed_rating: Optional[str] = Field(None, min_length=1, max_length=5)
    season_type: Optional[SeasonType] = None
    tire_type: Optional[TireType] = None
    tread_depth: Optional[str] = Field(None, max_length=10)
    construction: Optional[str] = Field(None, max_length=20)
    tire_sound_volume: Optional[str] = Field(None, max_length=50)

    sale_start_date: Optional[datetime] = None
    sale_end_date: Optional[datetime] = None
    features: Optional[List[str]] = None
    specifications: Optional[Dict[str, Any]] = None
    tags: Optional[List[str]] = None
    seo_title: Optional[str] = Field(None, max_length=255)
    seo_description: Optional[str] = None

    images: Optional[List[ProductImageIn]] = None
    category_ids: Optional[List[int]] = None

    @field_validator("name", "brand", "model", "sku", "size")
    @classmethod
    def strip_value(cls, v):
        return v.strip() if v is not None else v

    @field_validator("description")
    @classmethod
    def sanitize_description(cls, v):
        return strip_tags(v)


class ProductCreate(ProductFields):
    name: str = Field(..., min_length=2, max_length=200)
    brand: str = Field(..., min_length=2, max_length=100)
    model: str = Field(..., min_length=2, max_length=100)
    price: Decimal = Field(..., ge=0)
    stock: int = Field(0, ge=0)


class ProductUpdate(ProductFields):
    pass
