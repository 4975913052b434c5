from pydantic import Field

from tirestore.schemas.base import CamelModel


class CartItemAdd(CamelModel):
    product_id: int
    quantity: int = Field(1, ge=1, le=100)


class CartItemUpdate(CamelModel):
    quantity: int = Field(..., ge=1, le=100)


class WishlistAdd(CamelModel):
    product_id: int
