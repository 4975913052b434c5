from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from tirestore.db.base_class import Base


class TokenBlacklist(Base):
    """Revoked access and refresh tokens, keyed by JTI until they expire."""

    __tablename__ = "token_blacklist"

    id = Column(Integer, primary_key=True, index=True)
    jti = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_type = Column(String(20), default="access", nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    reason = Column(String(50), nullable=True)  # logout, password_reset, password_change
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
