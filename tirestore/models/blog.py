from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from datetime import datetime
from tirestore.db.base_class import Base


class BlogPost(Base):
    __tablename__ = "blog_posts"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False, index=True)
    excerpt = Column(Text)
    content = Column(Text, nullable=False)
    author = Column(String(100), nullable=False)
    author_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    status = Column(String(20), default="draft", nullable=False, index=True)  # draft, published
    featured = Column(Boolean, default=False)
    category = Column(String(50), nullable=False, index=True)
    tags = Column(Text)  # comma separated
    image = Column(String(500))
    read_time = Column(String(20))
    views = Column(Integer, default=0)
    published_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    comments = relationship("BlogComment", back_populates="post", cascade="all, delete-orphan")

    @property
    def tag_list(self):
        if not self.tags:
            return []
        return [tag.strip() for tag in self.tags.split(",") if tag.strip()]


class BlogComment(Base):
    __tablename__ = "blog_comments"

    id = Column(Integer, primary_key=True, index=True)
    post_id = Column(Integer, ForeignKey("blog_posts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    author_name = Column(String(100))
    author_email = Column(String(255))
    content = Column(Text, nullable=False)
    status = Column(String(20), default="pending", nullable=False)  # pending, approved, spam
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    post = relationship("BlogPost", back_populates="comments")


class BlogSubscriber(Base):
    __tablename__ = "blog_subscribers"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(100))
    status = Column(String(20), default="active", nullable=False)
    subscribed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    unsubscribed_at = Column(DateTime, nullable=True)
