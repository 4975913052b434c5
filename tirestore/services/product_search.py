"""
Catalog listing: SQL filters, allow-listed sorting and approximate text search.

Filtering always happens in the database. A free-text term is matched in
process against a bounded candidate set (only the searchable columns of the
pre-filtered rows), and full rows are loaded for the requested page only, so
the reported total and the returned page come from the same matched set.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

import structlog
from rapidfuzz import fuzz, process, utils
from sqlalchemy import asc, desc, false, func, or_, select
from sqlalchemy.orm import Session, selectinload

from tirestore.core.config import settings
from tirestore.models.category import Category, product_categories
from tirestore.models.product import Product, ProductStatus

logger = structlog.get_logger()

ALL = "all"
SHORT_TERM_LENGTH = 2
SEARCH_ENDPOINT_THRESHOLD = 0.4
SEARCH_ENDPOINT_LIMIT = 50

SORT_COLUMNS = {
    "createdAt": Product.created_at,
    "updatedAt": Product.updated_at,
    "name": Product.name,
    "price": Product.price,
    "brand": Product.brand,
    "stock": Product.stock,
    "rating": Product.rating,
}

# Multi-valued equality filters: ProductFilters attribute -> column
INCLUSION_FILTERS = {
    "brand": Product.brand,
    "model": Product.model,
    "size": Product.size,
    "status": Product.status,
    "season_type": Product.season_type,
    "speed_rating": Product.speed_rating,
    "load_index": Product.load_index,
    "tire_type": Product.tire_type,
    "construction": Product.construction,
}

SEARCH_COLUMNS = (Product.name, Product.brand, Product.model, Product.sku, Product.size)

Candidate = Tuple[int, str]


@dataclass
class ProductFilters:
    brand: List[str] = field(default_factory=list)
    model: List[str] = field(default_factory=list)
    size: List[str] = field(default_factory=list)
    status: List[str] = field(default_factory=list)
    season_type: List[str] = field(default_factory=list)
    speed_rating: List[str] = field(default_factory=list)
    load_index: List[str] = field(default_factory=list)
    tire_type: List[str] = field(default_factory=list)
    construction: List[str] = field(default_factory=list)
    category: List[str] = field(default_factory=list)
    featured: Optional[bool] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    search: Optional[str] = None
    sort_by: Optional[str] = None
    sort_order: str = "desc"


@dataclass
class ProductPage:
    items: List[Product]
    total: int


def active_values(values: Optional[Sequence[str]]) -> List[str]:
    """Drop blanks and the `all` sentinel from a repeated query parameter."""
    if not values:
        return []
    cleaned = [v.strip() for v in values if v is not None and v.strip()]
    if any(v.lower() == ALL for v in cleaned):
        return []
    return cleaned


def resolve_category_ids(db: Session, names_or_slugs: Sequence[str]) -> List[int]:
    rows = (
        db.query(Category.id)
        .filter(or_(Category.name.in_(names_or_slugs), Category.slug.in_(names_or_slugs)))
        .all()
    )
    return [row.id for row in rows]


def build_conditions(db: Session, filters: ProductFilters) -> list:
    conditions = []

    for attr, column in INCLUSION_FILTERS.items():
        values = active_values(getattr(filters, attr))
        if values:
            conditions.append(column.in_(values))

    if filters.featured is not None:
        conditions.append(Product.featured == filters.featured)
    if filters.min_price is not None:
        conditions.append(Product.price >= filters.min_price)
    if filters.max_price is not None:
        conditions.append(Product.price <= filters.max_price)

    categories = active_values(filters.category)
    if categories:
        category_ids = resolve_category_ids(db, categories)
        if category_ids:
            linked = (
                select(product_categories.c.product_id)
                .where(product_categories.c.category_id.in_(category_ids))
            )
            conditions.append(Product.id.in_(linked))
        else:
            conditions.append(false())

    return conditions


def order_clause(sort_by: Optional[str], sort_order: Optional[str]):
    if sort_by and sort_by not in SORT_COLUMNS:
        # Unknown sort keys mean newest first, whatever sortOrder says
        sort_by, sort_order = None, "desc"
    column = SORT_COLUMNS.get(sort_by or "", Product.created_at)
    direction = asc if (sort_order or "").lower() == "asc" else desc
    # id keeps pagination stable when the sort column has ties
    return [direction(column), direction(Product.id)]


def _candidate_text(row) -> str:
    return " ".join(str(value) for value in (row.name, row.brand, row.model, row.sku, row.size) if value)


def load_candidates(db: Session, conditions: list, ordering: list) -> List[Candidate]:
    """Searchable text of the filtered rows, capped at SEARCH_MAX_CANDIDATES."""
    rows = (
        db.query(Product)
        .filter(*conditions)
        .order_by(*ordering)
        .with_entities(Product.id, *SEARCH_COLUMNS)
        .limit(settings.SEARCH_MAX_CANDIDATES)
        .all()
    )
    if len(rows) == settings.SEARCH_MAX_CANDIDATES:
        logger.warning("product_search_candidates_capped", cap=settings.SEARCH_MAX_CANDIDATES)
    return [(row.id, _candidate_text(row)) for row in rows]


def fuzzy_match(term: str, candidates: Sequence[Candidate], threshold: float) -> List[int]:
    """
    Ids of candidates whose text approximately contains `term`, best first.

    `threshold` is a distance in [0, 1]: 0 demands an exact partial match,
    higher values tolerate more edits.
    """
    if not candidates:
        return []
    matches = process.extract(
        term,
        [text for _, text in candidates],
        scorer=fuzz.partial_ratio,
        processor=utils.default_process,
        score_cutoff=100 * (1 - threshold),
        limit=None,
    )
    # extract() sorts by score only; keep the SQL order among equal scores
    matches.sort(key=lambda match: (-match[1], match[2]))
    return [candidates[index][0] for _, _, index in matches]


def substring_match(term: str, candidates: Sequence[Candidate]) -> List[int]:
    needle = term.lower()
    return [product_id for product_id, text in candidates if needle in text.lower()]


def match_term(
    term: str,
    candidates: Sequence[Candidate],
    threshold: float,
    keep_order: bool = False,
) -> List[int]:
    ids = fuzzy_match(term, candidates, threshold)
    if not ids:
        return substring_match(term, candidates)
    if keep_order:
        matched = set(ids)
        return [product_id for product_id, _ in candidates if product_id in matched]
    return ids


def load_products(db: Session, ids: Sequence[int]) -> List[Product]:
    """Full rows with images and categories, in the order of `ids`."""
    if not ids:
        return []
    rows = (
        db.query(Product)
        .options(selectinload(Product.images), selectinload(Product.categories))
        .filter(Product.id.in_(ids))
        .all()
    )
    by_id = {product.id: product for product in rows}
    return [by_id[product_id] for product_id in ids if product_id in by_id]


def search_products(db: Session, filters: ProductFilters, page: int, limit: int) -> ProductPage:
    conditions = build_conditions(db, filters)
    ordering = order_clause(filters.sort_by, filters.sort_order)
    offset = (page - 1) * limit
    term = (filters.search or "").strip()

    if len(term) <= SHORT_TERM_LENGTH:
        base = db.query(Product).filter(*conditions)
        total = base.count()
        ids = [row.id for row in base.order_by(*ordering).with_entities(Product.id).offset(offset).limit(limit)]
        return ProductPage(items=load_products(db, ids), total=total)

    candidates = load_candidates(db, conditions, ordering)
    # Any sortBy, even an unknown one, replaces relevance with the SQL order
    matched = match_term(
        term,
        candidates,
        settings.SEARCH_FUZZY_THRESHOLD,
        keep_order=filters.sort_by is not None,
    )
    logger.debug("product_search", term=term, candidates=len(candidates), matched=len(matched))
    return ProductPage(items=load_products(db, matched[offset:offset + limit]), total=len(matched))


def quick_search(db: Session, term: str, brand: Optional[str] = None) -> List[Product]:
    """Published products matching `term`, optionally restricted to one brand."""
    conditions = [Product.status == ProductStatus.PUBLISHED.value]
    brand = (brand or "").strip()
    if brand and brand.lower() != ALL:
        conditions.append(Product.brand.ilike(brand))

    ordering = order_clause(None, None)
    term = (term or "").strip()
    if not term:
        ids = [row.id for row in db.query(Product.id).filter(*conditions).order_by(*ordering).limit(SEARCH_ENDPOINT_LIMIT)]
        return load_products(db, ids)

    candidates = load_candidates(db, conditions, ordering)
    if len(term) == 1:
        matched = substring_match(term, candidates)
    else:
        matched = match_term(term, candidates, SEARCH_ENDPOINT_THRESHOLD)
    return load_products(db, matched[:SEARCH_ENDPOINT_LIMIT])


def filter_facets(db: Session) -> dict:
    """Distinct brands and statuses plus the positive price range of the catalog."""
    brands = [row[0] for row in db.query(Product.brand).distinct().order_by(Product.brand) if row[0]]
    statuses = [row[0] for row in db.query(Product.status).distinct().order_by(Product.status) if row[0]]
    low, high = (
        db.query(func.min(Product.price), func.max(Product.price))
        .filter(Product.price > 0)
        .one()
    )
    return {
        "brands": brands,
        "statuses": statuses,
        "priceRange": {"min": float(low or 0), "max": float(high or 0)},
    }
