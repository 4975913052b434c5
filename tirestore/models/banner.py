from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from datetime import datetime
from tirestore.db.base_class import Base


class Banner(Base):
    __tablename__ = "banners"

    id = Column(Integer, primary_key=True, index=True)
    banner_type = Column("type", String(20), nullable=False)  # image, video
    src = Column(String(500), nullable=False)
    headline = Column(String(255))
    subheadline = Column(String(255))
    description = Column(Text)
    sort_order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
