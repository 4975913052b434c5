from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session, selectinload

from tirestore.api.deps import get_current_user, require_admin
from tirestore.core.exceptions import ForbiddenError, OrderNotFound
from tirestore.db.session import get_db
from tirestore.models.order import Order, OrderStatus
from tirestore.models.user import User
from tirestore.schemas.order import OrderStatusValue, OrderUpdate, PaymentStatusValue
from tirestore.tasks.email_tasks import send_order_completed, send_order_shipped
from tirestore.utils import email as mailer
from tirestore.utils.response import paginated_response, success
from tirestore.utils.serializers import money, order_to_dict

router = APIRouter()
logger = structlog.get_logger()

ORDER_SORTS = {"total": Order.total, "createdAt": Order.created_at}


def _owned_by(user: User):
    # Guest checkouts made with the account's email belong to the account too
    return or_(
        Order.user_id == user.id,
        and_(Order.user_id.is_(None), Order.user_email == user.email),
    )


def _can_view(order: Order, user: User) -> bool:
    if user.is_admin:
        return True
    if order.user_id is not None:
        return order.user_id == user.id
    return order.user_email == user.email


@router.get("", response_model=dict)
@router.get("/", response_model=dict)
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    order_status: Optional[OrderStatusValue] = Query(None, alias="status"),
    payment_status: Optional[PaymentStatusValue] = Query(None, alias="paymentStatus"),
    user_id: Optional[int] = Query(None, alias="userId"),
    sort_by: str = Query("createdAt", alias="sortBy", pattern="^(total|createdAt)$"),
    sort_order: str = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(Order)
    if not current_user.is_admin:
        query = query.filter(_owned_by(current_user))
    elif user_id is not None:
        query = query.filter(Order.user_id == user_id)

    if order_status:
        query = query.filter(Order.status == order_status)
    if payment_status:
        query = query.filter(Order.payment_status == payment_status)

    column = ORDER_SORTS[sort_by]
    ordering = column.asc() if sort_order == "asc" else column.desc()

    total = query.count()
    orders = (
        query.options(selectinload(Order.items))
        .order_by(ordering, Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return paginated_response([order_to_dict(o) for o in orders], total, page, limit, message="Orders retrieved")


@router.get("/stats/summary", response_model=dict)
def order_stats(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    now = datetime.utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    month_start = today.replace(day=1)

    total_orders, total_revenue = db.query(func.count(Order.id), func.coalesce(func.sum(Order.total), 0)).one()
    today_orders, today_revenue = (
        db.query(func.count(Order.id), func.coalesce(func.sum(Order.total), 0))
        .filter(Order.created_at >= today)
        .one()
    )
    month_orders = db.query(func.count(Order.id)).filter(Order.created_at >= month_start).scalar()
    breakdown = dict(db.query(Order.status, func.count(Order.id)).group_by(Order.status).all())

    total_revenue = money(total_revenue) or 0
    return success(
        data={
            "totalOrders": total_orders,
            "todayOrders": today_orders,
            "thisMonthOrders": month_orders,
            "totalRevenue": total_revenue,
            "todayRevenue": money(today_revenue) or 0,
            "avgOrderValue": round(total_revenue / total_orders, 2) if total_orders else 0,
            "statusBreakdown": breakdown,
            "pendingOrders": breakdown.get(OrderStatus.PENDING.value, 0),
            "completedOrders": breakdown.get(OrderStatus.COMPLETED.value, 0),
            "cancelledOrders": breakdown.get(OrderStatus.CANCELLED.value, 0),
        },
        message="Order statistics retrieved",
    )


@router.get("/{order_id}", response_model=dict)
def get_order(
    order_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    order = (
        db.query(Order)
        .options(selectinload(Order.items))
        .filter(Order.id == order_id)
        .first()
    )
    if not order:
        raise OrderNotFound()
    if not _can_view(order, current_user):
        raise ForbiddenError("You do not have access to this order")
    return success(data=order_to_dict(order), message="Order retrieved")


@router.put("/{order_id}", response_model=dict)
def update_order(
    order_id: int,
    payload: OrderUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise OrderNotFound()

    previous_status = order.status
    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if value is not None:
            setattr(order, field, value)
    db.commit()
    db.refresh(order)

    if order.status != previous_status:
        logger.info("order_status_changed", order_id=order.id, old=previous_status, new=order.status)
        if order.status == OrderStatus.SHIPPED.value:
            mailer.enqueue(send_order_shipped, order.id)
        elif order.status == OrderStatus.COMPLETED.value:
            mailer.enqueue(send_order_completed, order.id)

    return success(data=order_to_dict(order), message="Order updated")
