from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
from tirestore.db.base_class import Base
from tirestore.models.category import product_categories


class ProductStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    HIDDEN = "hidden"


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    slug = Column(String(255), unique=True, nullable=True, index=True)
    brand = Column(String(100), nullable=False, index=True)
    model = Column(String(100), nullable=False)
    size = Column(String(50), nullable=False)
    sku = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(Text)

    # Pricing
    price = Column(Numeric(10, 2), nullable=False)
    compare_price = Column(Numeric(10, 2), nullable=True)
    sale_start_date = Column(DateTime, nullable=True)
    sale_end_date = Column(DateTime, nullable=True)

    # Stock & Status
    stock = Column(Integer, default=0, nullable=False)
    low_stock_threshold = Column(Integer, default=10)
    status = Column(String(20), default=ProductStatus.DRAFT.value, nullable=False, index=True)
    featured = Column(Boolean, default=False)
    rating = Column(Numeric(3, 2), default=0)

    # Tire specification
    tire_width = Column(String(10))
    aspect_ratio = Column(String(10))
    rim_diameter = Column(String(10))
    load_index = Column(String(10))
    speed_rating = Column(String(5))
    season_type = Column(String(20))
    tire_type = Column(String(30))
    tread_depth = Column(String(10))
    construction = Column(String(20))
    tire_sound_volume = Column(String(50))

    features = Column(JSON)
    specifications = Column(JSON)
    tags = Column(JSON)

    # SEO & Metadata
    seo_title = Column(String(255))
    seo_description = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    images = relationship(
        "ProductImage",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductImage.sort_order",
    )
    categories = relationship("Category", secondary=product_categories, back_populates="products")
    reviews = relationship("Review", back_populates="product", cascade="all, delete-orphan")
    wishlist_items = relationship("WishlistItem", back_populates="product", cascade="all, delete-orphan")
    cart_items = relationship("CartItem", back_populates="product", cascade="all, delete-orphan")

    @property
    def is_on_sale(self) -> bool:
        if self.compare_price is None or self.price is None or self.compare_price <= self.price:
            return False
        now = datetime.utcnow()
        if self.sale_start_date and self.sale_start_date > now:
            return False
        if self.sale_end_date and self.sale_end_date < now:
            return False
        return True

    @property
    def primary_image(self):
        primary = next((img.image_url for img in self.images if img.is_primary), None)
        if not primary and self.images:
            primary = self.images[0].image_url
        return primary


# Composite indexes for listing filters
Index("idx_product_status_created", Product.status, Product.created_at)
Index("idx_product_brand_status", Product.brand, Product.status)
Index("idx_product_price", Product.price)


class ProductImage(Base):
    __tablename__ = "product_images"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    image_url = Column(String(500), nullable=False)
    alt_text = Column(String(255))
    is_primary = Column(Boolean, default=False)
    sort_order = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    product = relationship("Product", back_populates="images")
