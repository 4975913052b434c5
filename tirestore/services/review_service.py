from sqlalchemy.orm import Session, selectinload
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from typing import List, Optional, Tuple
import structlog

from tirestore.core.exceptions import ConflictError, NotFoundError, ValidationError
from tirestore.models.order import Order
from tirestore.models.product import Product
from tirestore.models.review import Review, ReviewHelpfulVote, ReviewImage, ReviewStatus
from tirestore.schemas.review import ReviewCreate, ReviewUpdate

logger = structlog.get_logger()

REVIEW_SORTS = {
    "newest": Review.created_at.desc(),
    "oldest": Review.created_at.asc(),
    "rating": Review.rating.desc(),
    "helpful": Review.helpful_count.desc(),
}

NOT_OWNED_MESSAGE = "Review not found or you do not have permission to edit it"


class ReviewService:

    @staticmethod
    def _validate_rating(rating: Optional[int]) -> None:
        if rating is not None and not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5")

    @staticmethod
    def _validate_images(images: List[str]) -> None:
        for url in images:
            if not url.startswith(("http://", "https://")):
                raise ValidationError("Review image URLs must be http(s) links")

    @staticmethod
    def _set_images(review: Review, images: List[str]) -> None:
        review.images = [
            ReviewImage(image_url=url, alt_text=f"Review image {index + 1}", sort_order=index)
            for index, url in enumerate(images)
        ]

    @staticmethod
    def _recalculate_product_rating(db: Session, product_id: int) -> None:
        """Product rating is the mean of its approved reviews."""
        avg_rating = (
            db.query(func.avg(Review.rating))
            .filter(Review.product_id == product_id, Review.status == ReviewStatus.APPROVED.value)
            .scalar()
        )
        db.query(Product).filter(Product.id == product_id).update(
            {"rating": round(float(avg_rating), 2) if avg_rating else 0},
            synchronize_session=False,
        )

    @staticmethod
    def _owned_review(db: Session, review_id: int, user_id: int) -> Review:
        review = (
            db.query(Review)
            .filter(Review.id == review_id, Review.user_id == user_id)
            .first()
        )
        if not review:
            raise NotFoundError(NOT_OWNED_MESSAGE)
        return review

    @staticmethod
    def stats(db: Session, product_id: int) -> dict:
        rows = (
            db.query(Review.rating, func.count(Review.id))
            .filter(Review.product_id == product_id, Review.status == ReviewStatus.APPROVED.value)
            .group_by(Review.rating)
            .all()
        )
        distribution = {str(star): 0 for star in range(1, 6)}
        total = 0
        weighted = 0
        for rating, count in rows:
            distribution[str(rating)] = count
            total += count
            weighted += rating * count
        return {
            "averageRating": round(weighted / total, 2) if total else 0,
            "totalReviews": total,
            "ratingDistribution": distribution,
        }

    @staticmethod
    def list_for_product(
        db: Session,
        product_id: int,
        viewer_id: Optional[int],
        page: int,
        limit: int,
        sort: str = "newest",
        rating: Optional[int] = None,
    ) -> Tuple[List[Review], int]:
        """Approved reviews, plus the viewer's own reviews in any status."""
        visible = Review.status == ReviewStatus.APPROVED.value
        if viewer_id is not None:
            visible = or_(visible, Review.user_id == viewer_id)

        query = db.query(Review).filter(Review.product_id == product_id, visible)
        if rating is not None:
            query = query.filter(Review.rating == rating)

        total = query.count()
        reviews = (
            query.options(selectinload(Review.images), selectinload(Review.user))
            .order_by(REVIEW_SORTS.get(sort, REVIEW_SORTS["newest"]), Review.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return reviews, total

    @staticmethod
    def create_review(db: Session, user_id: int, data: ReviewCreate) -> Review:
        ReviewService._validate_rating(data.rating)
        ReviewService._validate_images(data.images)

        if not db.query(Product.id).filter(Product.id == data.product_id).first():
            raise NotFoundError("Product not found")

        existing = (
            db.query(Review.id)
            .filter(Review.user_id == user_id, Review.product_id == data.product_id)
            .first()
        )
        if existing:
            raise ConflictError("You have already reviewed this product")

        verified = False
        if data.order_id is not None:
            verified = (
                db.query(Order.id)
                .filter(Order.id == data.order_id, Order.user_id == user_id)
                .first()
                is not None
            )

        review = Review(
            product_id=data.product_id,
            user_id=user_id,
            order_id=data.order_id if verified else None,
            rating=data.rating,
            title=data.title,
            comment=data.comment,
            status=ReviewStatus.PENDING.value,
            is_verified_purchase=verified,
        )
        ReviewService._set_images(review, data.images)
        db.add(review)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ConflictError("You have already reviewed this product") from exc
        db.refresh(review)

        logger.info("review_created", review_id=review.id, product_id=review.product_id, user_id=user_id)
        return review

    @staticmethod
    def update_review(db: Session, review_id: int, user_id: int, data: ReviewUpdate) -> Review:
        review = ReviewService._owned_review(db, review_id, user_id)
        ReviewService._validate_rating(data.rating)

        changes = data.model_dump(exclude_unset=True, exclude={"images"})
        for field, value in changes.items():
            if value is not None:
                setattr(review, field, value)
        if data.images is not None:
            ReviewService._validate_images(data.images)
            ReviewService._set_images(review, data.images)

        # Edited reviews go back through moderation
        was_approved = review.status == ReviewStatus.APPROVED.value
        review.status = ReviewStatus.PENDING.value
        if was_approved:
            db.flush()
            ReviewService._recalculate_product_rating(db, review.product_id)

        db.commit()
        db.refresh(review)
        return review

    @staticmethod
    def delete_review(db: Session, review_id: int, user_id: int) -> None:
        review = ReviewService._owned_review(db, review_id, user_id)
        product_id = review.product_id
        db.delete(review)
        db.flush()
        ReviewService._recalculate_product_rating(db, product_id)
        db.commit()
        logger.info("review_deleted", review_id=review_id, user_id=user_id)

    @staticmethod
    def _get_review(db: Session, review_id: int) -> Review:
        review = db.query(Review).filter(Review.id == review_id).first()
        if not review:
            raise NotFoundError("Review not found")
        return review

    @staticmethod
    def has_voted(db: Session, review_id: int, user_id: int) -> bool:
        return (
            db.query(ReviewHelpfulVote.id)
            .filter(ReviewHelpfulVote.review_id == review_id, ReviewHelpfulVote.user_id == user_id)
            .first()
            is not None
        )

    @staticmethod
    def add_helpful_vote(db: Session, review_id: int, user_id: int) -> int:
        review = ReviewService._get_review(db, review_id)
        if ReviewService.has_voted(db, review_id, user_id):
            raise ValidationError("You have already marked this review as helpful")

        db.add(ReviewHelpfulVote(review_id=review_id, user_id=user_id))
        review.helpful_count = (review.helpful_count or 0) + 1
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ValidationError("You have already marked this review as helpful") from exc
        return review.helpful_count

    @staticmethod
    def remove_helpful_vote(db: Session, review_id: int, user_id: int) -> int:
        review = ReviewService._get_review(db, review_id)
        vote = (
            db.query(ReviewHelpfulVote)
            .filter(ReviewHelpfulVote.review_id == review_id, ReviewHelpfulVote.user_id == user_id)
            .first()
        )
        if not vote:
            raise ValidationError("You have not marked this review as helpful")

        db.delete(vote)
        review.helpful_count = max(0, (review.helpful_count or 0) - 1)
        db.commit()
        return review.helpful_count

    @staticmethod
    def admin_list(
        db: Session,
        page: int,
        limit: int,
        status: Optional[str] = None,
    ) -> Tuple[List[Review], int]:
        query = db.query(Review)
        if status and status != "all":
            query = query.filter(Review.status == status)
        total = query.count()
        reviews = (
            query.options(selectinload(Review.images), selectinload(Review.user), selectinload(Review.product))
            .order_by(Review.created_at.desc(), Review.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return reviews, total

    @staticmethod
    def set_status(db: Session, review_id: int, status: str) -> Review:
        review = ReviewService._get_review(db, review_id)
        review.status = status
        db.flush()
        ReviewService._recalculate_product_rating(db, review.product_id)
        db.commit()
        db.refresh(review)
        logger.info("review_moderated", review_id=review_id, status=status)
        return review
