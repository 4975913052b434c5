from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, selectinload

from tirestore.api.deps import get_current_user
from tirestore.core.exceptions import NotFoundError, ProductNotFound
from tirestore.db.session import get_db
from tirestore.models.cart import CartItem
from tirestore.models.product import Product
from tirestore.models.user import User
from tirestore.schemas.cart import CartItemAdd, CartItemUpdate
from tirestore.utils.response import success
from tirestore.utils.serializers import money, product_summary

router = APIRouter()


def _item_to_dict(item: CartItem) -> dict:
    return {
        "id": item.id,
        "productId": item.product_id,
        "quantity": item.quantity,
        "product": product_summary(item.product) if item.product else None,
        "lineTotal": money(item.product.price * item.quantity) if item.product else None,
        "createdAt": item.created_at,
    }


def _owned_item(db: Session, item_id: int, user_id: int) -> CartItem:
    item = (
        db.query(CartItem)
        .filter(CartItem.id == item_id, CartItem.user_id == user_id)
        .first()
    )
    if not item:
        raise NotFoundError("Cart item not found")
    return item


@router.get("", response_model=dict)
@router.get("/", response_model=dict)
def get_cart(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    items = (
        db.query(CartItem)
        .options(selectinload(CartItem.product).selectinload(Product.images))
        .filter(CartItem.user_id == current_user.id)
        .order_by(CartItem.created_at.asc(), CartItem.id.asc())
        .all()
    )
    data = [_item_to_dict(item) for item in items]
    subtotal = sum((line["lineTotal"] or 0) for line in data)
    return success(
        data=data,
        message="Cart retrieved",
        meta={"itemCount": sum(item.quantity for item in items), "subtotal": round(subtotal, 2)},
    )


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
@router.post("/", response_model=dict, status_code=status.HTTP_201_CREATED)
def add_to_cart(
    payload: CartItemAdd,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not db.query(Product.id).filter(Product.id == payload.product_id).first():
        raise ProductNotFound()

    item = (
        db.query(CartItem)
        .filter(CartItem.user_id == current_user.id, CartItem.product_id == payload.product_id)
        .first()
    )
    if item:
        item.quantity = payload.quantity
        db.commit()
        db.refresh(item)
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=success(data=_item_to_dict(item), message="Cart item updated"),
        )

    item = CartItem(user_id=current_user.id, product_id=payload.product_id, quantity=payload.quantity)
    db.add(item)
    db.commit()
    db.refresh(item)
    return success(data=_item_to_dict(item), message="Item added to cart")


@router.put("/{item_id}", response_model=dict)
def update_cart_item(
    item_id: int,
    payload: CartItemUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    item = _owned_item(db, item_id, current_user.id)
    item.quantity = payload.quantity
    db.commit()
    db.refresh(item)
    return success(data=_item_to_dict(item), message="Cart item updated")


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_cart_item(
    item_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    item = _owned_item(db, item_id, current_user.id)
    db.delete(item)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
@router.delete("/", status_code=status.HTTP_204_NO_CONTENT)
def clear_cart(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    db.query(CartItem).filter(CartItem.user_id == current_user.id).delete(synchronize_session=False)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
