from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from tirestore.api.deps import require_admin
from tirestore.core.exceptions import NotFoundError
from tirestore.core.rate_limiter import limiter
from tirestore.db.session import get_db
from tirestore.models.category import Category
from tirestore.models.product import Product
from tirestore.models.user import User
from tirestore.schemas.product import ProductCreate, ProductUpdate
from tirestore.services import product_search
from tirestore.services.product_search import ProductFilters
from tirestore.services.product_service import ProductService
from tirestore.utils.response import paginated_response, success
from tirestore.utils.serializers import product_to_dict

router = APIRouter()


def _paginate(query, page: int, limit: int):
    total = query.count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, total


@router.get("", response_model=dict)
@router.get("/", response_model=dict)
@limiter.limit("100/minute")
def list_products(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=100),
    brand: Optional[List[str]] = Query(None),
    model: Optional[List[str]] = Query(None),
    size: Optional[List[str]] = Query(None),
    product_status: Optional[List[str]] = Query(None, alias="status"),
    category: Optional[List[str]] = Query(None),
    season_type: Optional[List[str]] = Query(None, alias="seasonType"),
    speed_rating: Optional[List[str]] = Query(None, alias="speedRating"),
    load_index: Optional[List[str]] = Query(None, alias="loadIndex"),
    tire_type: Optional[List[str]] = Query(None, alias="tireType"),
    construction: Optional[List[str]] = Query(None),
    featured: Optional[bool] = None,
    min_price: Optional[Decimal] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[Decimal] = Query(None, alias="maxPrice", ge=0),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
):
    """
    Catalog listing with multi-valued filters, allow-listed sorting and fuzzy search.

    Repeated keys (`?brand=A&brand=B`) become an inclusion test; the value
    `all` disables a filter.
    """
    filters = ProductFilters(
        brand=brand or [],
        model=model or [],
        size=size or [],
        status=product_status or [],
        season_type=season_type or [],
        speed_rating=speed_rating or [],
        load_index=load_index or [],
        tire_type=tire_type or [],
        construction=construction or [],
        category=category or [],
        featured=featured,
        min_price=min_price,
        max_price=max_price,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    result = product_search.search_products(db, filters, page, limit)
    return paginated_response(
        [product_to_dict(product) for product in result.items],
        result.total,
        page,
        limit,
        message="Products retrieved",
        filters=product_search.filter_facets(db),
    )


@router.get("/search", response_model=dict)
@limiter.limit("100/minute")
def search_products(
    request: Request,
    q: str = Query("", max_length=100),
    brand: Optional[str] = Query(None, max_length=100),
    db: Session = Depends(get_db),
):
    products = product_search.quick_search(db, q, brand)
    return success(
        data=[product_to_dict(product) for product in products],
        message="Search results",
        meta={"query": q, "count": len(products)},
    )


@router.get("/brands", response_model=dict)
def list_brands(db: Session = Depends(get_db)):
    return success(data=ProductService.brand_counts(db), message="Brands retrieved")


@router.get("/brands/{brand}", response_model=dict)
def products_by_brand(brand: str, db: Session = Depends(get_db)):
    products = (
        ProductService.published_query(db)
        .filter(Product.brand.ilike(brand))
        .order_by(Product.created_at.desc(), Product.id.desc())
        .all()
    )
    return success(data=[product_to_dict(product) for product in products], message="Brand products retrieved")


@router.get("/categories/{slug}", response_model=dict)
def products_by_category(slug: str, db: Session = Depends(get_db)):
    category = db.query(Category).filter(Category.slug == slug).first()
    if not category:
        raise NotFoundError("Category not found")

    products = (
        ProductService.published_query(db)
        .filter(Product.categories.any(Category.id == category.id))
        .order_by(Product.created_at.desc(), Product.id.desc())
        .all()
    )
    return success(
        data=[product_to_dict(product) for product in products],
        message="Category products retrieved",
        meta={"category": {"id": category.id, "name": category.name, "slug": category.slug}},
    )


@router.get("/on-sale", response_model=dict)
def on_sale_products(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    query = ProductService.on_sale_query(db).order_by(Product.created_at.desc(), Product.id.desc())
    products, total = _paginate(query, page, limit)
    return paginated_response([product_to_dict(p) for p in products], total, page, limit, message="On-sale products")


@router.get("/new-arrivals", response_model=dict)
def new_arrivals(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    query = ProductService.new_arrivals_query(db).order_by(Product.created_at.desc(), Product.id.desc())
    products, total = _paginate(query, page, limit)
    return paginated_response([product_to_dict(p) for p in products], total, page, limit, message="New arrivals")


@router.get("/featured/list", response_model=dict)
def featured_products(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    query = (
        ProductService.published_query(db)
        .filter(Product.featured.is_(True))
        .order_by(Product.created_at.desc(), Product.id.desc())
    )
    products, total = _paginate(query, page, limit)
    return paginated_response([product_to_dict(p) for p in products], total, page, limit, message="Featured products")


@router.get("/{product_id}", response_model=dict)
def get_product(product_id: int, db: Session = Depends(get_db)):
    product = ProductService.get_product(db, product_id)
    return success(data=product_to_dict(product, with_categories=True), message="Product retrieved")


@router.get("/{product_id}/related", response_model=dict)
def related_products(product_id: int, db: Session = Depends(get_db)):
    product = ProductService.get_product(db, product_id)
    related = ProductService.related_products(db, product)
    return success(data=[product_to_dict(p) for p in related], message="Related products retrieved")


# --------------------------------------------------
# ADMIN
# --------------------------------------------------
@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
@router.post("/", response_model=dict, status_code=status.HTTP_201_CREATED)
def create_product(
    payload: ProductCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    product = ProductService.create_product(db, payload)
    return success(data=product_to_dict(product, with_categories=True), message="Product created")


@router.put("/{product_id}", response_model=dict)
def update_product(
    product_id: int,
    payload: ProductUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    product = ProductService.update_product(db, product_id, payload)
    return success(data=product_to_dict(product, with_categories=True), message="Product updated")


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_product(
    product_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    ProductService.delete_product(db, product_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
