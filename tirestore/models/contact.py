from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from datetime import datetime
from tirestore.db.base_class import Base


class ContactMessage(Base):
    __tablename__ = "contact_messages"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(20))
    subject = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    inquiry_type = Column(String(20), nullable=False)
    status = Column(String(20), default="pending", nullable=False, index=True)
    admin_response = Column(Text)
    client_ip = Column(String(45))
    user_agent = Column(Text)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
