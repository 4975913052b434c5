import structlog
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tirestore.api.deps import require_admin
from tirestore.core.exceptions import ConflictError, NotFoundError
from tirestore.db.session import get_db
from tirestore.models.category import Category, product_categories
from tirestore.models.user import User
from tirestore.schemas.category import CategoryCreate, CategoryUpdate
from tirestore.utils.response import success
from tirestore.utils.serializers import category_to_dict

router = APIRouter()
logger = structlog.get_logger()


def _get_category(db: Session, category_id: int) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise NotFoundError("Category not found")
    return category


def _commit(db: Session, category: Category) -> Category:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Category slug already exists") from exc
    db.refresh(category)
    return category


@router.get("", response_model=dict)
@router.get("/", response_model=dict)
def list_categories(db: Session = Depends(get_db)):
    """Active categories with the number of linked products."""
    counts = dict(
        db.query(product_categories.c.category_id, func.count(product_categories.c.product_id))
        .group_by(product_categories.c.category_id)
        .all()
    )
    categories = (
        db.query(Category)
        .filter(Category.is_active.is_(True))
        .order_by(Category.sort_order.asc(), Category.name.asc())
        .all()
    )
    return success(
        data=[category_to_dict(c, product_count=counts.get(c.id, 0)) for c in categories],
        message="Categories retrieved",
    )


@router.get("/{slug}", response_model=dict)
def get_category(slug: str, db: Session = Depends(get_db)):
    category = db.query(Category).filter(Category.slug == slug).first()
    if not category:
        raise NotFoundError("Category not found")
    return success(data=category_to_dict(category), message="Category retrieved")


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
@router.post("/", response_model=dict, status_code=status.HTTP_201_CREATED)
def create_category(
    payload: CategoryCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    if db.query(Category.id).filter(Category.slug == payload.slug).first():
        raise ConflictError("Category slug already exists")
    if payload.parent_id is not None:
        _get_category(db, payload.parent_id)

    category = Category(**payload.model_dump())
    db.add(category)
    category = _commit(db, category)
    logger.info("category_created", category_id=category.id, slug=category.slug)
    return success(data=category_to_dict(category), message="Category created")


@router.put("/{category_id}", response_model=dict)
def update_category(
    category_id: int,
    payload: CategoryUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    category = _get_category(db, category_id)
    changes = payload.model_dump(exclude_unset=True)

    slug = changes.get("slug")
    if slug and slug != category.slug:
        if db.query(Category.id).filter(Category.slug == slug, Category.id != category_id).first():
            raise ConflictError("Category slug already exists")

    for field, value in changes.items():
        setattr(category, field, value)
    category = _commit(db, category)
    return success(data=category_to_dict(category), message="Category updated")


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    category = _get_category(db, category_id)
    for child in category.children:
        child.parent_id = None
    db.delete(category)
    db.commit()
    logger.info("category_deleted", category_id=category_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
