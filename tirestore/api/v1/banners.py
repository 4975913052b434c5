from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from tirestore.api.deps import require_admin
from tirestore.core.exceptions import NotFoundError
from tirestore.db.session import get_db
from tirestore.models.banner import Banner
from tirestore.models.user import User
from tirestore.schemas.banner import BannerCreate, BannerUpdate
from tirestore.utils.response import success
from tirestore.utils.serializers import banner_to_dict

router = APIRouter()


def _get_banner(db: Session, banner_id: int) -> Banner:
    banner = db.query(Banner).filter(Banner.id == banner_id).first()
    if not banner:
        raise NotFoundError("Banner not found")
    return banner


def _apply(banner: Banner, changes: dict) -> None:
    if "type" in changes:
        banner.banner_type = changes.pop("type")
    for field, value in changes.items():
        setattr(banner, field, value)


@router.get("", response_model=dict)
@router.get("/", response_model=dict)
def active_banners(db: Session = Depends(get_db)):
    banners = (
        db.query(Banner)
        .filter(Banner.is_active.is_(True))
        .order_by(Banner.sort_order.asc(), Banner.id.asc())
        .all()
    )
    return success(data=[banner_to_dict(b) for b in banners], message="Banners retrieved")


@router.get("/all", response_model=dict)
def all_banners(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    banners = db.query(Banner).order_by(Banner.sort_order.asc(), Banner.id.asc()).all()
    return success(data=[banner_to_dict(b) for b in banners], message="Banners retrieved")


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
@router.post("/", response_model=dict, status_code=status.HTTP_201_CREATED)
def create_banner(
    payload: BannerCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    banner = Banner()
    _apply(banner, payload.model_dump())
    db.add(banner)
    db.commit()
    db.refresh(banner)
    return success(data=banner_to_dict(banner), message="Banner created")


@router.put("/{banner_id}", response_model=dict)
def update_banner(
    banner_id: int,
    payload: BannerUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    banner = _get_banner(db, banner_id)
    _apply(banner, {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None})
    db.commit()
    db.refresh(banner)
    return success(data=banner_to_dict(banner), message="Banner updated")


@router.delete("/{banner_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_banner(
    banner_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    db.delete(_get_banner(db, banner_id))
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
