import json
import math
import re
from datetime import datetime
from typing import List, Optional, Union

import structlog
from fastapi import APIRouter, Depends, Query, Response, status
from slugify import slugify
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from tirestore.api.deps import get_optional_user, require_admin
from tirestore.core.exceptions import NotFoundError, ValidationError
from tirestore.db.session import get_db
from tirestore.models.blog import BlogComment, BlogPost, BlogSubscriber
from tirestore.models.user import User
from tirestore.schemas.blog import BlogPostCreate, BlogPostUpdate, BlogSubscribe, CommentCreate, CommentModerate
from tirestore.schemas.contact import NewsletterUnsubscribe
from tirestore.utils.response import paginated_response, success
from tirestore.utils.serializers import blog_comment_to_dict, blog_post_to_dict

router = APIRouter()
logger = structlog.get_logger()

PUBLISHED = "published"
WORDS_PER_MINUTE = 200
TAG_SEPARATORS = re.compile(r"[#|,]")


def normalize_tags(tags: Optional[Union[List[str], str]]) -> Optional[str]:
    """Accept a list, a JSON array string or a `#`, `|` or `,` delimited string."""
    if tags is None:
        return None
    if isinstance(tags, str):
        raw = tags.strip()
        parsed = None
        if raw.startswith("[") and raw.endswith("]"):
            try:
                parsed = json.loads(raw)
            except ValueError:
                parsed = None
        tags = parsed if isinstance(parsed, list) else TAG_SEPARATORS.split(raw)
    cleaned = [str(tag).strip() for tag in tags if str(tag).strip()]
    return ",".join(cleaned) or None


def estimate_read_time(content: str) -> str:
    words = len((content or "").split())
    return f"{max(1, math.ceil(words / WORDS_PER_MINUTE))} min read"


def _unique_slug(db: Session, title: str, exclude_id: Optional[int] = None) -> str:
    base = slugify(title) or "post"
    query = db.query(BlogPost.slug).filter(BlogPost.slug.like(f"{base}%"))
    if exclude_id is not None:
        query = query.filter(BlogPost.id != exclude_id)
    taken = {row.slug for row in query}

    slug, counter = base, 1
    while slug in taken:
        slug = f"{base}-{counter}"
        counter += 1
    return slug


def _get_post(db: Session, post_id: int) -> BlogPost:
    post = db.query(BlogPost).filter(BlogPost.id == post_id).first()
    if not post:
        raise NotFoundError("Blog post not found")
    return post


def _published_post(db: Session, slug: str) -> BlogPost:
    post = db.query(BlogPost).filter(BlogPost.slug == slug, BlogPost.status == PUBLISHED).first()
    if not post:
        raise NotFoundError("Blog post not found")
    return post


# --------------------------------------------------
# PUBLIC
# --------------------------------------------------
@router.get("", response_model=dict)
@router.get("/", response_model=dict)
def list_posts(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    category: Optional[str] = Query(None, max_length=50),
    search: Optional[str] = Query(None, max_length=100),
    featured: Optional[bool] = None,
    db: Session = Depends(get_db),
):
    query = db.query(BlogPost).filter(BlogPost.status == PUBLISHED)
    if category and category != "all":
        query = query.filter(BlogPost.category == category)
    if featured is not None:
        query = query.filter(BlogPost.featured == featured)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(
            or_(BlogPost.title.ilike(term), BlogPost.excerpt.ilike(term), BlogPost.content.ilike(term))
        )

    total = query.count()
    posts = (
        query.order_by(BlogPost.published_at.desc(), BlogPost.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return paginated_response(
        [blog_post_to_dict(p, with_content=False) for p in posts], total, page, limit, message="Posts retrieved"
    )


@router.get("/featured", response_model=dict)
def featured_posts(limit: int = Query(3, ge=1, le=20), db: Session = Depends(get_db)):
    posts = (
        db.query(BlogPost)
        .filter(BlogPost.status == PUBLISHED, BlogPost.featured.is_(True))
        .order_by(BlogPost.published_at.desc(), BlogPost.id.desc())
        .limit(limit)
        .all()
    )
    return success(data=[blog_post_to_dict(p, with_content=False) for p in posts], message="Featured posts")


@router.get("/categories", response_model=dict)
def blog_categories(db: Session = Depends(get_db)):
    rows = (
        db.query(BlogPost.category, func.count(BlogPost.id))
        .filter(BlogPost.status == PUBLISHED)
        .group_by(BlogPost.category)
        .order_by(BlogPost.category)
        .all()
    )
    return success(data=[{"name": name, "count": count} for name, count in rows], message="Categories retrieved")


# --------------------------------------------------
# ADMIN
# --------------------------------------------------
@router.get("/admin/posts", response_model=dict)
def admin_posts(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    post_status: Optional[str] = Query(None, alias="status", pattern="^(all|draft|published)$"),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    query = db.query(BlogPost)
    if post_status and post_status != "all":
        query = query.filter(BlogPost.status == post_status)
    total = query.count()
    posts = query.order_by(BlogPost.created_at.desc(), BlogPost.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return paginated_response([blog_post_to_dict(p) for p in posts], total, page, limit, message="Posts retrieved")


@router.post("/admin/posts", response_model=dict, status_code=status.HTTP_201_CREATED)
def create_post(
    payload: BlogPostCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    post = BlogPost(
        title=payload.title,
        slug=_unique_slug(db, payload.slug or payload.title),
        excerpt=payload.excerpt,
        content=payload.content,
        author=payload.author or admin.name or "Admin",
        author_id=admin.id,
        category=payload.category,
        tags=normalize_tags(payload.tags),
        image=payload.image,
        status=payload.status,
        featured=bool(payload.featured),
        read_time=estimate_read_time(payload.content),
        published_at=datetime.utcnow() if payload.status == PUBLISHED else None,
    )
    db.add(post)
    db.commit()
    db.refresh(post)
    logger.info("blog_post_created", post_id=post.id, slug=post.slug, status=post.status)
    return success(data=blog_post_to_dict(post), message="Post created")


@router.put("/admin/posts/{post_id}", response_model=dict)
def update_post(
    post_id: int,
    payload: BlogPostUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    post = _get_post(db, post_id)
    changes = payload.model_dump(exclude_unset=True)

    if "tags" in changes:
        post.tags = normalize_tags(changes.pop("tags"))
    if changes.get("slug"):
        post.slug = _unique_slug(db, changes.pop("slug"), exclude_id=post.id)
    elif changes.get("title") and changes["title"] != post.title:
        post.slug = _unique_slug(db, changes["title"], exclude_id=post.id)
    changes.pop("slug", None)

    for field, value in changes.items():
        if value is not None:
            setattr(post, field, value)

    if "content" in changes and changes["content"]:
        post.read_time = estimate_read_time(post.content)
    if post.status == PUBLISHED and post.published_at is None:
        post.published_at = datetime.utcnow()

    db.commit()
    db.refresh(post)
    return success(data=blog_post_to_dict(post), message="Post updated")


@router.delete("/admin/posts/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_post(
    post_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    db.delete(_get_post(db, post_id))
    db.commit()
    logger.info("blog_post_deleted", post_id=post_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/admin/comments", response_model=dict)
def admin_comments(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    comment_status: Optional[str] = Query(None, alias="status", pattern="^(all|pending|approved|spam)$"),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    query = db.query(BlogComment)
    if comment_status and comment_status != "all":
        query = query.filter(BlogComment.status == comment_status)
    total = query.count()
    comments = (
        query.order_by(BlogComment.created_at.desc(), BlogComment.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    data = [
        {**blog_comment_to_dict(c), "postTitle": c.post.title if c.post else None}
        for c in comments
    ]
    return paginated_response(data, total, page, limit, message="Comments retrieved")


@router.put("/admin/comments/{comment_id}", response_model=dict)
def moderate_comment(
    comment_id: int,
    payload: CommentModerate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    comment = db.query(BlogComment).filter(BlogComment.id == comment_id).first()
    if not comment:
        raise NotFoundError("Comment not found")
    comment.status = payload.status
    db.commit()
    db.refresh(comment)
    return success(data=blog_comment_to_dict(comment), message="Comment updated")


@router.delete("/admin/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    comment = db.query(BlogComment).filter(BlogComment.id == comment_id).first()
    if not comment:
        raise NotFoundError("Comment not found")
    db.delete(comment)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --------------------------------------------------
# SUBSCRIPTIONS
# --------------------------------------------------
@router.post("/subscribe", response_model=dict)
def subscribe(payload: BlogSubscribe, db: Session = Depends(get_db)):
    email = payload.email.lower()
    subscriber = db.query(BlogSubscriber).filter(BlogSubscriber.email == email).first()
    if subscriber and subscriber.status == "active":
        return success(message="Already subscribed")

    if subscriber:
        subscriber.status = "active"
        subscriber.unsubscribed_at = None
        subscriber.name = payload.name or subscriber.name
    else:
        db.add(BlogSubscriber(email=email, name=payload.name))
    db.commit()
    logger.info("blog_subscribed", email=email)
    return success(message="Successfully subscribed to the blog")


@router.post("/unsubscribe", response_model=dict)
def unsubscribe(payload: NewsletterUnsubscribe, db: Session = Depends(get_db)):
    subscriber = db.query(BlogSubscriber).filter(BlogSubscriber.email == payload.email.lower()).first()
    if not subscriber:
        raise NotFoundError("Subscriber not found")
    subscriber.status = "unsubscribed"
    subscriber.unsubscribed_at = datetime.utcnow()
    db.commit()
    return success(message="Successfully unsubscribed")


# --------------------------------------------------
# POSTS BY SLUG
# --------------------------------------------------
@router.get("/{slug}", response_model=dict)
def get_post(slug: str, db: Session = Depends(get_db)):
    post = _published_post(db, slug)
    comments = (
        db.query(BlogComment)
        .filter(BlogComment.post_id == post.id, BlogComment.status == "approved")
        .order_by(BlogComment.created_at.asc(), BlogComment.id.asc())
        .all()
    )
    data = blog_post_to_dict(post)
    data["comments"] = [blog_comment_to_dict(c) for c in comments]
    return success(data=data, message="Post retrieved")


@router.post("/{slug}/view", response_model=dict)
def record_view(slug: str, db: Session = Depends(get_db)):
    post = _published_post(db, slug)
    db.query(BlogPost).filter(BlogPost.id == post.id).update(
        {BlogPost.views: func.coalesce(BlogPost.views, 0) + 1}, synchronize_session=False
    )
    db.commit()
    db.refresh(post)
    return success(data={"views": post.views})


@router.post("/{post_id}/comments", response_model=dict, status_code=status.HTTP_201_CREATED)
def add_comment(
    post_id: int,
    payload: CommentCreate,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    post = db.query(BlogPost).filter(BlogPost.id == post_id, BlogPost.status == PUBLISHED).first()
    if not post:
        raise NotFoundError("Blog post not found")

    author_name = payload.author_name or (current_user.name if current_user else None)
    author_email = payload.author_email or (current_user.email if current_user else None)
    if not author_name or not author_email:
        raise ValidationError("Name and email are required to comment")

    comment = BlogComment(
        post_id=post.id,
        user_id=current_user.id if current_user else None,
        author_name=author_name,
        author_email=author_email,
        content=payload.content,
        status="pending",
    )
    db.add(comment)
    db.commit()
    db.refresh(comment)
    return success(data=blog_comment_to_dict(comment), message="Comment submitted and awaiting moderation")
