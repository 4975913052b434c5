from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from tirestore.api.deps import get_current_user, get_optional_user, require_admin
from tirestore.db.session import get_db
from tirestore.models.review import ReviewStatus
from tirestore.models.user import User
from tirestore.schemas.review import ReviewCreate, ReviewStatusUpdate, ReviewUpdate
from tirestore.services.review_service import ReviewService
from tirestore.utils.response import paginated_response, success
from tirestore.utils.serializers import product_summary, review_to_dict

router = APIRouter()


def _admin_review_dict(review) -> dict:
    data = review_to_dict(review)
    data["userEmail"] = review.user.email if review.user else None
    data["product"] = product_summary(review.product) if review.product else None
    return data


@router.get("/product/{product_id}", response_model=dict)
def product_reviews(
    product_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    sort: str = Query("newest", pattern="^(newest|oldest|rating|helpful)$"),
    rating: Optional[int] = Query(None, ge=1, le=5),
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    viewer_id = current_user.id if current_user else None
    reviews, total = ReviewService.list_for_product(db, product_id, viewer_id, page, limit, sort, rating)
    return paginated_response(
        [review_to_dict(r, viewer_id) for r in reviews],
        total,
        page,
        limit,
        message="Reviews retrieved",
        stats=ReviewService.stats(db, product_id),
    )


@router.get("/stats/{product_id}", response_model=dict)
def review_stats(product_id: int, db: Session = Depends(get_db)):
    return success(data=ReviewService.stats(db, product_id), message="Review statistics retrieved")


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
@router.post("/", response_model=dict, status_code=status.HTTP_201_CREATED)
def create_review(
    payload: ReviewCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    review = ReviewService.create_review(db, current_user.id, payload)
    return success(
        data=review_to_dict(review, current_user.id),
        message="Review submitted and awaiting moderation",
    )


@router.put("/{review_id}", response_model=dict)
def update_review(
    review_id: int,
    payload: ReviewUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    review = ReviewService.update_review(db, review_id, current_user.id, payload)
    return success(data=review_to_dict(review, current_user.id), message="Review updated")


@router.delete("/{review_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_review(
    review_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ReviewService.delete_review(db, review_id, current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{review_id}/helpful", response_model=dict)
def mark_helpful(
    review_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    count = ReviewService.add_helpful_vote(db, review_id, current_user.id)
    return success(data={"helpfulCount": count, "hasVoted": True}, message="Marked as helpful")


@router.delete("/{review_id}/helpful", response_model=dict)
def unmark_helpful(
    review_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    count = ReviewService.remove_helpful_vote(db, review_id, current_user.id)
    return success(data={"helpfulCount": count, "hasVoted": False}, message="Helpful vote removed")


@router.get("/{review_id}/helpful/check", response_model=dict)
def check_helpful(
    review_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return success(data={"hasVoted": ReviewService.has_voted(db, review_id, current_user.id)})


# --------------------------------------------------
# ADMIN
# --------------------------------------------------
@router.get("/admin/all", response_model=dict)
def admin_reviews(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    review_status: Optional[str] = Query(None, alias="status", pattern="^(all|pending|approved|rejected)$"),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    reviews, total = ReviewService.admin_list(db, page, limit, review_status)
    return paginated_response([_admin_review_dict(r) for r in reviews], total, page, limit, message="Reviews retrieved")


@router.get("/admin/pending", response_model=dict)
def pending_reviews(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    reviews, total = ReviewService.admin_list(db, page, limit, ReviewStatus.PENDING.value)
    return paginated_response([_admin_review_dict(r) for r in reviews], total, page, limit, message="Pending reviews")


@router.put("/admin/{review_id}/status", response_model=dict)
def moderate_review(
    review_id: int,
    payload: ReviewStatusUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    review = ReviewService.set_status(db, review_id, payload.status)
    return success(data=_admin_review_dict(review), message=f"Review {payload.status}")
