from datetime import datetime, timedelta
from typing import List, Optional

import structlog
from slugify import slugify
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from tirestore.core.exceptions import ProductNotFound, SKUAlreadyExists, ValidationError
from tirestore.models.category import Category
from tirestore.models.product import Product, ProductImage, ProductStatus
from tirestore.schemas.product import ProductCreate, ProductImageIn, ProductUpdate

logger = structlog.get_logger()

RELATED_LIMIT = 12
NEW_ARRIVAL_DAYS = 30

# Attributes copied verbatim from the request body onto the model
PLAIN_FIELDS = (
    "name", "brand", "model", "description", "price", "compare_price", "stock",
    "low_stock_threshold", "status", "featured", "tire_width", "aspect_ratio",
    "rim_diameter", "load_index", "speed_rating", "season_type", "tire_type",
    "tread_depth", "construction", "tire_sound_volume", "sale_start_date",
    "sale_end_date", "features", "specifications", "tags", "seo_title",
    "seo_description",
)


class ProductService:

    @staticmethod
    def compose_size(tire_width, aspect_ratio, rim_diameter, fallback: Optional[str]) -> Optional[str]:
        """`205/55R16` when all three dimensions are known, else the given size."""
        if tire_width and aspect_ratio and rim_diameter:
            return f"{tire_width}/{aspect_ratio}R{rim_diameter}"
        return fallback

    @staticmethod
    def generate_sku(brand: str, model: str, size: str) -> str:
        return f"{brand[:3].upper()}-{model[:3].upper()}-{size.replace('/', '-')}"

    @staticmethod
    def unique_slug(db: Session, brand: str, name: str, size: str, exclude_id: Optional[int] = None) -> str:
        base = slugify(f"{brand}-{name}-{size}") or "product"
        query = db.query(Product.slug).filter(Product.slug.like(f"{base}%"))
        if exclude_id is not None:
            query = query.filter(Product.id != exclude_id)
        taken = {row.slug for row in query}

        slug, counter = base, 1
        while slug in taken:
            slug = f"{base}-{counter}"
            counter += 1
        return slug

    @staticmethod
    def _ensure_sku_free(db: Session, sku: str, exclude_id: Optional[int] = None) -> None:
        query = db.query(Product.id).filter(Product.sku == sku)
        if exclude_id is not None:
            query = query.filter(Product.id != exclude_id)
        if query.first():
            raise SKUAlreadyExists()

    @staticmethod
    def _replace_images(product: Product, images: List[ProductImageIn]) -> None:
        product.images = [
            ProductImage(
                image_url=image.image_url,
                alt_text=image.alt_text or f"{product.name} - Image {index + 1}",
                is_primary=index == 0,
                sort_order=index,
            )
            for index, image in enumerate(images)
        ]

    @staticmethod
    def _replace_categories(db: Session, product: Product, category_ids: List[int]) -> None:
        if not category_ids:
            product.categories = []
            return
        categories = db.query(Category).filter(Category.id.in_(category_ids)).all()
        if len(categories) != len(set(category_ids)):
            raise ValidationError("One or more categories do not exist")
        product.categories = categories

    @staticmethod
    def _commit(db: Session, product: Product) -> Product:
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            logger.warning("product_save_conflict", sku=product.sku, error=str(exc.orig))
            raise SKUAlreadyExists() from exc
        db.refresh(product)
        return product

    @staticmethod
    def get_product(db: Session, product_id: int) -> Product:
        product = (
            db.query(Product)
            .options(selectinload(Product.images), selectinload(Product.categories))
            .filter(Product.id == product_id)
            .first()
        )
        if not product:
            raise ProductNotFound()
        return product

    @staticmethod
    def create_product(db: Session, data: ProductCreate) -> Product:
        size = ProductService.compose_size(data.tire_width, data.aspect_ratio, data.rim_diameter, data.size)
        if not size:
            raise ValidationError("Size is required when tire dimensions are incomplete")

        sku = data.sku or ProductService.generate_sku(data.brand, data.model, size)
        ProductService._ensure_sku_free(db, sku)

        product = Product(size=size, sku=sku)
        for attr in PLAIN_FIELDS:
            value = getattr(data, attr)
            if value is not None:
                setattr(product, attr, value)
        if product.status is None:
            product.status = ProductStatus.DRAFT.value
        if product.low_stock_threshold is None:
            product.low_stock_threshold = 10
        product.slug = ProductService.unique_slug(db, data.brand, data.name, size)

        ProductService._replace_images(product, data.images or [])
        ProductService._replace_categories(db, product, data.category_ids or [])

        db.add(product)
        product = ProductService._commit(db, product)
        logger.info("product_created", product_id=product.id, sku=product.sku)
        return product

    @staticmethod
    def update_product(db: Session, product_id: int, data: ProductUpdate) -> Product:
        product = ProductService.get_product(db, product_id)
        changes = data.model_dump(exclude_unset=True)

        for attr in PLAIN_FIELDS:
            if attr in changes:
                setattr(product, attr, changes[attr])

        product.size = ProductService.compose_size(
            product.tire_width,
            product.aspect_ratio,
            product.rim_diameter,
            changes.get("size") or product.size,
        )

        if changes.get("sku"):
            ProductService._ensure_sku_free(db, changes["sku"], exclude_id=product.id)
            product.sku = changes["sku"]

        if {"name", "brand", "size", "tire_width", "aspect_ratio", "rim_diameter"} & changes.keys():
            product.slug = ProductService.unique_slug(
                db, product.brand, product.name, product.size, exclude_id=product.id
            )

        if data.images is not None:
            ProductService._replace_images(product, data.images)
        if data.category_ids is not None:
            ProductService._replace_categories(db, product, data.category_ids)

        product = ProductService._commit(db, product)
        logger.info("product_updated", product_id=product.id, fields=sorted(changes))
        return product

    @staticmethod
    def delete_product(db: Session, product_id: int) -> None:
        product = db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise ProductNotFound()
        db.delete(product)
        db.commit()
        logger.info("product_deleted", product_id=product_id)

    @staticmethod
    def related_products(db: Session, product: Product) -> List[Product]:
        return (
            db.query(Product)
            .options(selectinload(Product.images))
            .filter(
                Product.id != product.id,
                Product.status == ProductStatus.PUBLISHED.value,
                or_(
                    Product.brand == product.brand,
                    Product.model == product.model,
                    Product.size == product.size,
                ),
            )
            .order_by(Product.created_at.desc(), Product.id.desc())
            .limit(RELATED_LIMIT)
            .all()
        )

    @staticmethod
    def brand_counts(db: Session) -> List[dict]:
        rows = (
            db.query(Product.brand, func.count(Product.id))
            .filter(Product.status == ProductStatus.PUBLISHED.value)
            .group_by(Product.brand)
            .order_by(Product.brand.asc())
            .all()
        )
        return [{"brand": brand, "count": count} for brand, count in rows]

    @staticmethod
    def published_query(db: Session):
        return (
            db.query(Product)
            .options(selectinload(Product.images), selectinload(Product.categories))
            .filter(Product.status == ProductStatus.PUBLISHED.value)
        )

    @staticmethod
    def on_sale_query(db: Session):
        now = datetime.utcnow()
        return ProductService.published_query(db).filter(
            Product.compare_price.isnot(None),
            Product.compare_price > Product.price,
            or_(Product.sale_start_date.is_(None), Product.sale_start_date <= now),
            or_(Product.sale_end_date.is_(None), Product.sale_end_date >= now),
        )

    @staticmethod
    def new_arrivals_query(db: Session):
        since = datetime.utcnow() - timedelta(days=NEW_ARRIVAL_DAYS)
        return ProductService.published_query(db).filter(Product.created_at >= since)
