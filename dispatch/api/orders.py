"""Order management API endpoints"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch.database import get_db, commit_or_conflict
from dispatch.exceptions import ForbiddenError
from dispatch.models.order import Order, OrderStatus
from dispatch.models.user import User, UserRole
from dispatch.schemas.agent import AgentResponse
from dispatch.schemas.order import (
    OrderCreate,
    OrderListResponse,
    OrderRatingCreate,
    OrderResponse,
    OrderStatusUpdate,
    PaymentStatusUpdate,
    TrackingEventResponse,
)
from dispatch.api.auth import get_current_user, require_role
from dispatch.services.notifier import RealtimeNotifier, get_notifier
from dispatch.services.orders import OrderLedger
from dispatch.services.tracking import delivery_address, delivery_time_window

router = APIRouter()


def order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        customer_id=order.customer_id,
        restaurant_id=order.restaurant_id,
        delivery_agent_id=order.delivery_agent_id,
        items=order.items_json or [],
        total_cents=order.total_cents,
        status=order.status,
        payment_status=order.payment_status,
        priority=order.priority,
        delivery_address=delivery_address(order),
        special_instructions=order.special_instructions,
        delivery_time_window=delivery_time_window(order),
        assigned_at=order.assigned_at,
        estimated_delivery_time=order.estimated_delivery_time,
        actual_delivery_time=order.actual_delivery_time,
        route=order.route_json,
        rating=order.rating,
        feedback=order.feedback,
        tracking_history=[TrackingEventResponse.model_validate(e) for e in order.tracking_events],
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


def check_order_access(order: Order, user: User) -> None:
    """Customers, the restaurant owner, the assigned agent and admins may see an order"""
    if user.role == UserRole.ADMIN:
        return
    if order.customer_id == user.id:
        return
    if order.restaurant is not None and order.restaurant.owner_id == user.id:
        return
    if order.delivery_agent is not None and order.delivery_agent.user_id == user.id:
        return
    raise ForbiddenError("Not authorized to access this order")


@router.get("", response_model=OrderListResponse)
async def list_orders(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status: Optional[OrderStatus] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List orders visible to the current user"""
    ledger = OrderLedger(db)
    orders, total = await ledger.list_for_user(current_user, page, page_size, status)

    return OrderListResponse(
        items=[order_response(order) for order in orders],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post("", response_model=OrderResponse, status_code=201)
async def create_order(
    order_data: OrderCreate,
    current_user: User = Depends(require_role(UserRole.CUSTOMER)),
    db: AsyncSession = Depends(get_db),
):
    """Place a new order"""
    ledger = OrderLedger(db)
    order = await ledger.create(
        customer_id=current_user.id,
        restaurant_id=order_data.restaurant_id,
        items=order_data.items,
        delivery_address=order_data.delivery_address,
        special_instructions=order_data.special_instructions,
        priority=order_data.priority,
        delivery_time_window=order_data.delivery_time_window,
    )
    await commit_or_conflict(db)

    return order_response(order)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get order details"""
    order = await OrderLedger(db).get(order_id)
    check_order_access(order, current_user)
    return order_response(order)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
):
    """Cancel a pending order"""
    ledger = OrderLedger(db, notifier)
    order = await ledger.get(order_id)
    if current_user.role != UserRole.ADMIN and order.customer_id != current_user.id:
        raise ForbiddenError("Only the customer can cancel this order")

    order = await ledger.cancel(order_id)
    await commit_or_conflict(db)
    await ledger.publish_events()

    return order_response(order)


@router.post("/{order_id}/status", response_model=OrderResponse)
async def advance_order_status(
    order_id: UUID,
    update: OrderStatusUpdate,
    current_user: User = Depends(
        require_role(UserRole.RESTAURANT, UserRole.DELIVERY, UserRole.ADMIN)
    ),
    db: AsyncSession = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
):
    """Move an order forward in its lifecycle"""
    ledger = OrderLedger(db, notifier)
    order = await ledger.get(order_id)
    check_order_access(order, current_user)

    point = None
    if update.longitude is not None and update.latitude is not None:
        point = (update.longitude, update.latitude)

    order = await ledger.advance_status(order_id, update.status, point, update.description)
    await commit_or_conflict(db)
    await ledger.publish_events()

    return order_response(order)


@router.post("/{order_id}/assign", response_model=Optional[AgentResponse])
async def assign_agent(
    order_id: UUID,
    current_user: User = Depends(require_role(UserRole.RESTAURANT, UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
):
    """Assign the best nearby agent; null when nobody is available"""
    ledger = OrderLedger(db, notifier)
    order = await ledger.get(order_id)
    check_order_access(order, current_user)

    agent = await ledger.assign_agent(order_id)
    if agent:
        await ledger.optimize_route(order_id)
    await commit_or_conflict(db)
    await ledger.publish_events()

    return agent


@router.post("/{order_id}/reassign", response_model=Optional[AgentResponse])
async def reassign_agent(
    order_id: UUID,
    current_user: User = Depends(require_role(UserRole.RESTAURANT, UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
):
    """Hand the order to another agent; null keeps the current one"""
    ledger = OrderLedger(db, notifier)
    order = await ledger.get(order_id)
    check_order_access(order, current_user)

    agent = await ledger.reassign_agent(order_id)
    await commit_or_conflict(db)
    await ledger.publish_events()

    return agent


@router.put("/{order_id}/payment_status", response_model=OrderResponse)
async def update_payment_status(
    order_id: UUID,
    update: PaymentStatusUpdate,
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    """Record the payment processor's outcome"""
    ledger = OrderLedger(db)
    order = await ledger.set_payment_status(order_id, update.payment_status)
    await commit_or_conflict(db)

    return order_response(order)


@router.post("/{order_id}/rating", response_model=OrderResponse)
async def rate_order(
    order_id: UUID,
    rating: OrderRatingCreate,
    current_user: User = Depends(require_role(UserRole.CUSTOMER)),
    db: AsyncSession = Depends(get_db),
):
    """Rate a delivered order"""
    ledger = OrderLedger(db)
    order = await ledger.get(order_id)
    if order.customer_id != current_user.id:
        raise ForbiddenError("Only the customer can rate this order")

    order = await ledger.rate(order_id, rating.rating, rating.feedback)
    await commit_or_conflict(db)

    return order_response(order)
