from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, selectinload

from tirestore.api.deps import get_current_user
from tirestore.core.exceptions import NotFoundError, ProductNotFound
from tirestore.db.session import get_db
from tirestore.models.product import Product
from tirestore.models.user import User
from tirestore.models.wishlist import WishlistItem
from tirestore.schemas.cart import WishlistAdd
from tirestore.utils.response import success
from tirestore.utils.serializers import product_summary

router = APIRouter()


def _item_to_dict(item: WishlistItem) -> dict:
    return {
        "id": item.id,
        "productId": item.product_id,
        "product": product_summary(item.product) if item.product else None,
        "createdAt": item.created_at,
    }


@router.get("", response_model=dict)
@router.get("/", response_model=dict)
def get_wishlist(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    items = (
        db.query(WishlistItem)
        .options(selectinload(WishlistItem.product).selectinload(Product.images))
        .filter(WishlistItem.user_id == current_user.id)
        .order_by(WishlistItem.created_at.desc(), WishlistItem.id.desc())
        .all()
    )
    return success(data=[_item_to_dict(item) for item in items], message="Wishlist retrieved")


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
@router.post("/", response_model=dict, status_code=status.HTTP_201_CREATED)
def add_to_wishlist(
    payload: WishlistAdd,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not db.query(Product.id).filter(Product.id == payload.product_id).first():
        raise ProductNotFound()

    existing = (
        db.query(WishlistItem)
        .filter(WishlistItem.user_id == current_user.id, WishlistItem.product_id == payload.product_id)
        .first()
    )
    if existing:
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=success(data=_item_to_dict(existing), message="Already in wishlist"),
        )

    item = WishlistItem(user_id=current_user.id, product_id=payload.product_id)
    db.add(item)
    db.commit()
    db.refresh(item)
    return success(data=_item_to_dict(item), message="Added to wishlist")


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_from_wishlist(
    product_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    deleted = (
        db.query(WishlistItem)
        .filter(WishlistItem.user_id == current_user.id, WishlistItem.product_id == product_id)
        .delete(synchronize_session=False)
    )
    if not deleted:
        raise NotFoundError("Wishlist item not found")
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
