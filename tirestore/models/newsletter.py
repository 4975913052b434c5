from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
from tirestore.db.base_class import Base


class CampaignType(str, enum.Enum):
    GENERAL = "general"
    PRODUCT_CATALOG = "product_catalog"
    PROMOTIONAL = "promotional"


class NewsletterSubscription(Base):
    __tablename__ = "newsletter_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(100))
    status = Column(String(20), default="active", nullable=False, index=True)  # active, unsubscribed, bounced
    source = Column(String(50), default="website")
    tags = Column(JSON)
    extra = Column("metadata", JSON)
    subscribed_at = Column(DateTime, default=datetime.utcnow)
    unsubscribed_at = Column(DateTime, nullable=True)
    last_email_sent = Column(DateTime, nullable=True)


class NewsletterCampaign(Base):
    __tablename__ = "newsletter_campaigns"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    status = Column(String(20), default="draft", nullable=False)  # draft, sent
    campaign_type = Column("type", String(50), default=CampaignType.GENERAL.value, nullable=False)
    scheduled_at = Column(DateTime, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    recipient_count = Column(Integer, default=0)
    open_count = Column(Integer, default=0)
    click_count = Column(Integer, default=0)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    products = relationship(
        "CampaignProduct",
        back_populates="campaign",
        cascade="all, delete-orphan",
        order_by="CampaignProduct.display_order",
    )


class CampaignProduct(Base):
    __tablename__ = "newsletter_campaign_products"

    id = Column(Integer, primary_key=True, index=True)
    campaign_id = Column(Integer, ForeignKey("newsletter_campaigns.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    display_order = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    campaign = relationship("NewsletterCampaign", back_populates="products")
    product = relationship("Product")
