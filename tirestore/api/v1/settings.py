from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from tirestore.api.deps import get_current_user
from tirestore.core.exceptions import NotFoundError
from tirestore.db.session import get_db
from tirestore.models.address import Address
from tirestore.models.user import User
from tirestore.schemas.user import AddressCreate, AddressUpdate, ProfileUpdate
from tirestore.utils.response import success
from tirestore.utils.serializers import address_to_dict, user_to_dict

router = APIRouter()


def _owned_address(db: Session, address_id: int, user_id: int) -> Address:
    address = (
        db.query(Address)
        .filter(Address.id == address_id, Address.user_id == user_id)
        .first()
    )
    if not address:
        raise NotFoundError("Address not found")
    return address


def _clear_defaults(db: Session, user_id: int, address_type: str, keep_id: Optional[int] = None) -> None:
    """At most one default address per type."""
    query = db.query(Address).filter(
        Address.user_id == user_id,
        Address.address_type == address_type,
        Address.is_default.is_(True),
    )
    if keep_id is not None:
        query = query.filter(Address.id != keep_id)
    query.update({Address.is_default: False}, synchronize_session=False)


@router.put("", response_model=dict)
@router.put("/", response_model=dict)
def update_profile(
    payload: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    current_user.name = payload.name.strip()
    db.commit()
    db.refresh(current_user)
    return success(data=user_to_dict(current_user), message="Profile updated")


@router.get("/addresses", response_model=dict)
def list_addresses(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    addresses = (
        db.query(Address)
        .filter(Address.user_id == current_user.id)
        .order_by(Address.is_default.desc(), Address.created_at.desc(), Address.id.desc())
        .all()
    )
    return success(data=[address_to_dict(a) for a in addresses], message="Addresses retrieved")


@router.get("/addresses/default", response_model=dict)
def default_address(
    address_type: Literal["billing", "shipping"] = Query("shipping", alias="type"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    address = (
        db.query(Address)
        .filter(
            Address.user_id == current_user.id,
            Address.address_type == address_type,
            Address.is_default.is_(True),
        )
        .first()
    )
    return success(data=address_to_dict(address) if address else None)


@router.post("/addresses", response_model=dict, status_code=status.HTTP_201_CREATED)
def create_address(
    payload: AddressCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if payload.is_default:
        _clear_defaults(db, current_user.id, payload.type)
    address = Address(
        user_id=current_user.id,
        address_type=payload.type,
        street=payload.street,
        city=payload.city,
        state=payload.state,
        zip_code=payload.zip_code,
        country=payload.country,
        is_default=payload.is_default,
    )
    db.add(address)
    db.commit()
    db.refresh(address)
    return success(data=address_to_dict(address), message="Address created")


@router.put("/addresses/{address_id}", response_model=dict)
def update_address(
    address_id: int,
    payload: AddressUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    address = _owned_address(db, address_id, current_user.id)
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if "type" in changes:
        address.address_type = changes.pop("type")
    for field, value in changes.items():
        setattr(address, field, value)
    if address.is_default:
        _clear_defaults(db, current_user.id, address.address_type, keep_id=address.id)
    db.commit()
    db.refresh(address)
    return success(data=address_to_dict(address), message="Address updated")


@router.delete("/addresses/{address_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_address(
    address_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    db.delete(_owned_address(db, address_id, current_user.id))
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
