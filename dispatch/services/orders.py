"""Order ledger: order records and their delivery state machine"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from dispatch.config import settings
from dispatch.database import flush_or_conflict
from dispatch.exceptions import (
    AgentUnavailableError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)
from dispatch.models.agent import DeliveryAgent
from dispatch.models.order import (
    NotificationType,
    Order,
    OrderNotification,
    OrderPriority,
    OrderStatus,
    OrderTrackingEvent,
    PaymentStatus,
)
from dispatch.models.restaurant import MenuItem, Restaurant
from dispatch.models.user import User, UserRole
from dispatch.schemas.order import DeliveryAddress, DeliveryTimeWindow, OrderItemCreate
from dispatch.services.agents import AgentDirectory
from dispatch.services.geo import Point, distance_km, eta_minutes, validate_point
from dispatch.services.notifier import RealtimeNotifier, order_room

logger = structlog.get_logger()

# Forward order of the lifecycle; cancelled sits outside it
STATUS_SEQUENCE = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.PICKED_UP,
    OrderStatus.IN_TRANSIT,
    OrderStatus.DELIVERED,
]

REASSIGNABLE_STATUSES = (OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY)

PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.FAILED: {PaymentStatus.PENDING, PaymentStatus.PAID},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),
}


def _parse_enum(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidInputError(f"Unknown {field} '{value}'", field=field)


def _utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps are stored as naive UTC"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class OrderLedger:
    """
    Owns orders: creation, status transitions, agent assignment, route
    estimates and notifications.

    Methods flush but never commit; the caller commits the unit of work and
    then calls publish_events() so real-time events only go out for writes
    that actually landed.
    """

    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[RealtimeNotifier] = None,
        directory: Optional[AgentDirectory] = None,
        search_radius_km: Optional[float] = None,
    ):
        self.db = db
        self.notifier = notifier
        self.agents = directory or AgentDirectory(db)
        self.search_radius_km = search_radius_km or settings.agent_search_radius_km
        self._events: List[Tuple[str, str, Dict[str, Any]]] = []

    async def get(self, order_id: UUID, lock: bool = False) -> Order:
        """Load an order; lock=True takes the row lock for a mutation"""
        query = select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
        if lock:
            query = query.with_for_update()

        result = await self.db.execute(query)
        order = result.scalar_one_or_none()
        if not order:
            raise NotFoundError("order", order_id)
        return order

    async def list_for_user(
        self,
        user: User,
        page: int = 1,
        page_size: int = 20,
        status: Optional[OrderStatus] = None,
    ) -> Tuple[List[Order], int]:
        """Orders visible to the user, newest first"""
        query = select(Order)
        count_query = select(func.count(Order.id))

        conditions = []
        if user.role == UserRole.CUSTOMER:
            conditions.append(Order.customer_id == user.id)
        elif user.role == UserRole.RESTAURANT:
            owned = select(Restaurant.id).where(Restaurant.owner_id == user.id)
            conditions.append(Order.restaurant_id.in_(owned))
        elif user.role == UserRole.DELIVERY:
            agent_ids = select(DeliveryAgent.id).where(DeliveryAgent.user_id == user.id)
            conditions.append(Order.delivery_agent_id.in_(agent_ids))

        if status:
            conditions.append(Order.status == status)

        for condition in conditions:
            query = query.where(condition)
            count_query = count_query.where(condition)

        total_result = await self.db.execute(count_query)
        total = total_result.scalar()

        offset = (page - 1) * page_size
        query = query.order_by(Order.created_at.desc()).offset(offset).limit(page_size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def create(
        self,
        customer_id: UUID,
        restaurant_id: UUID,
        items: Sequence[OrderItemCreate],
        delivery_address: DeliveryAddress,
        special_instructions: Optional[str] = None,
        priority: OrderPriority = OrderPriority.NORMAL,
        delivery_time_window: Optional[DeliveryTimeWindow] = None,
    ) -> Order:
        """Validate line items against the catalog and open a pending order"""
        if not items:
            raise InvalidInputError("An order needs at least one item", field="items")
        for item in items:
            if item.quantity < 1:
                raise InvalidInputError(
                    f"Quantity for menu item '{item.menu_item_id}' must be at least 1",
                    field="quantity",
                )

        lon, lat = validate_point(
            (delivery_address.longitude, delivery_address.latitude), "delivery_address"
        )

        window = delivery_time_window or DeliveryTimeWindow()
        window_start, window_end = _utc_naive(window.start), _utc_naive(window.end)
        if window_start and window_end and window_start >= window_end:
            raise InvalidInputError(
                "Delivery window must start before it ends", field="delivery_time_window"
            )

        restaurant = await self.db.get(Restaurant, restaurant_id)
        if not restaurant or not restaurant.is_active:
            raise NotFoundError("restaurant", restaurant_id)

        result = await self.db.execute(
            select(MenuItem).where(
                MenuItem.restaurant_id == restaurant_id,
                MenuItem.id.in_([item.menu_item_id for item in items]),
            )
        )
        menu = {menu_item.id: menu_item for menu_item in result.scalars().all()}

        line_items = []
        total = 0
        for item in items:
            menu_item = menu.get(item.menu_item_id)
            if not menu_item:
                raise NotFoundError("menu item", item.menu_item_id)
            if not menu_item.is_available:
                raise InvalidInputError(f"{menu_item.name} is currently unavailable", field="items")

            line_items.append({
                "menu_item_id": str(menu_item.id),
                "name": menu_item.name,
                "quantity": item.quantity,
                "unit_price_cents": menu_item.price_cents,
            })
            total += menu_item.price_cents * item.quantity

        now = datetime.utcnow()
        order = Order(
            customer_id=customer_id,
            restaurant_id=restaurant.id,
            items_json=line_items,
            total_cents=total,
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            priority=priority,
            delivery_street=delivery_address.street,
            delivery_city=delivery_address.city,
            delivery_state=delivery_address.state,
            delivery_zip_code=delivery_address.zip_code,
            delivery_longitude=lon,
            delivery_latitude=lat,
            special_instructions=special_instructions,
            preferred_delivery_start=window_start,
            preferred_delivery_end=window_end,
            delivery_time_flexible=window.is_flexible,
            restaurant=restaurant,
            tracking_events=[],
            notifications=[],
            created_at=now,
            updated_at=now,
        )
        self.db.add(order)
        await flush_or_conflict(self.db)

        logger.info(
            "Order created",
            order_id=str(order.id),
            restaurant_id=str(restaurant.id),
            item_count=len(line_items),
            total_cents=total,
        )
        return order

    async def advance_status(
        self,
        order_id: UUID,
        new_status: OrderStatus,
        point: Optional[Point] = None,
        description: Optional[str] = None,
    ) -> Order:
        """
        Move an order forward along its lifecycle.

        Steps may be skipped but never reversed. Reaching delivered stamps
        actual_delivery_time and frees the agent.
        """
        new_status = _parse_enum(OrderStatus, new_status, "status")
        if point is not None:
            point = validate_point(point)

        order = await self.get(order_id, lock=True)
        self._check_forward(order, new_status)

        now = datetime.utcnow()
        previous = order.status
        order.status = new_status
        self._append_tracking(order, new_status, point, description)

        if new_status == OrderStatus.DELIVERED:
            order.actual_delivery_time = now
            started = order.assigned_at or order.created_at
            minutes = max((now - started).total_seconds() / 60, 0.0)
            await self.agents.release(order.delivery_agent_id, minutes)

        self._append_notification(
            order,
            NotificationType.STATUS_UPDATE,
            f"Your order is now {new_status.value.replace('_', ' ')}",
        )
        await flush_or_conflict(self.db)

        self._queue(order, "order_status", {"status": new_status.value})
        logger.info(
            "Order status advanced",
            order_id=str(order.id),
            from_status=previous.value,
            to_status=new_status.value,
        )
        return order

    async def cancel(self, order_id: UUID) -> Order:
        """Cancel a pending order"""
        order = await self.get(order_id, lock=True)
        if order.status != OrderStatus.PENDING:
            raise InvalidTransitionError(
                f"Cannot cancel an order that is {order.status.value}"
            )

        order.status = OrderStatus.CANCELLED
        self._append_tracking(order, OrderStatus.CANCELLED, description="Order cancelled")
        await flush_or_conflict(self.db)

        self._queue(order, "order_status", {"status": OrderStatus.CANCELLED.value})
        logger.info("Order cancelled", order_id=str(order.id))
        return order

    def _check_forward(self, order: Order, new_status: OrderStatus) -> None:
        if new_status == OrderStatus.CANCELLED:
            raise InvalidTransitionError("Use cancel to cancel an order")
        if order.is_terminal:
            raise InvalidTransitionError(f"Order is already {order.status.value}")
        if STATUS_SEQUENCE.index(new_status) <= STATUS_SEQUENCE.index(order.status):
            raise InvalidTransitionError(
                f"Cannot move order from {order.status.value} to {new_status.value}"
            )
        if order.delivery_agent_id is None:
            raise InvalidTransitionError("No delivery agent assigned to this order")

    async def assign_agent(self, order_id: UUID) -> Optional[DeliveryAgent]:
        """Assign the best nearby agent to a pending order, or return None"""
        order = await self.get(order_id, lock=True)
        if order.status != OrderStatus.PENDING or order.delivery_agent_id is not None:
            raise InvalidTransitionError(
                f"Agents are assigned to pending orders only (order is {order.status.value})"
            )

        agent = await self._claim_agent(order)
        if agent:
            order.status = OrderStatus.CONFIRMED
            self._bind_agent(order, agent, "Delivery agent assigned")
            await flush_or_conflict(self.db)
            self._queue(order, "order_status", {"status": order.status.value})
        return agent

    async def ensure_assigned(self, order_id: UUID) -> Optional[DeliveryAgent]:
        """
        Lazily assign an agent to a pending, unassigned order and compute its
        route. A no-op returning the current agent for any other order.
        """
        order = await self.get(order_id, lock=True)
        if order.delivery_agent_id is not None or order.status != OrderStatus.PENDING:
            return order.delivery_agent
        return await self._assign_waiting(order)

    async def assign_if_waiting(self, order_id: UUID) -> Optional[DeliveryAgent]:
        """Like ensure_assigned, but None unless this call made the assignment"""
        order = await self.get(order_id, lock=True)
        if order.delivery_agent_id is not None or order.status != OrderStatus.PENDING:
            return None
        return await self._assign_waiting(order)

    async def _assign_waiting(self, order: Order) -> Optional[DeliveryAgent]:
        agent = await self._claim_agent(order)
        if agent:
            order.status = OrderStatus.CONFIRMED
            self._bind_agent(order, agent, "Delivery agent assigned")
            self._optimize(order)
            await flush_or_conflict(self.db)
            self._queue(order, "order_status", {"status": order.status.value})
        return agent

    async def reassign_agent(self, order_id: UUID) -> Optional[DeliveryAgent]:
        """
        Hand an order not yet picked up to a different agent.

        Returns None and keeps the current agent when nobody else is
        available.
        """
        order = await self.get(order_id, lock=True)
        if order.status not in REASSIGNABLE_STATUSES or order.delivery_agent_id is None:
            raise InvalidTransitionError(
                f"Cannot reassign an order that is {order.status.value}"
            )

        previous_id = order.delivery_agent_id
        agent = await self._claim_agent(order, exclude=previous_id)
        if not agent:
            return None

        await self.agents.unbind(previous_id)
        self._bind_agent(order, agent, "Delivery agent reassigned")
        self._optimize(order)
        await flush_or_conflict(self.db)

        logger.info(
            "Order reassigned",
            order_id=str(order.id),
            from_agent=str(previous_id),
            to_agent=str(agent.id),
        )
        return agent

    async def _claim_agent(self, order: Order, exclude: Optional[UUID] = None) -> Optional[DeliveryAgent]:
        candidates = await self.agents.find_nearest_available(
            order.delivery_location, self.search_radius_km, exclude=exclude
        )
        for candidate in candidates:
            try:
                return await self.agents.assign(candidate.id, order.id)
            except AgentUnavailableError:
                # Lost the race for this one, try the next best
                continue

        logger.info("No delivery agent available", order_id=str(order.id))
        return None

    def _bind_agent(self, order: Order, agent: DeliveryAgent, description: str) -> None:
        order.delivery_agent_id = agent.id
        order.delivery_agent = agent
        order.assigned_at = datetime.utcnow()
        self._append_tracking(order, order.status, description=description)

        name = agent.user.full_name if agent.user and agent.user.full_name else "A courier"
        self._append_notification(
            order,
            NotificationType.STATUS_UPDATE,
            f"Delivery agent {name} assigned to your order",
        )

    async def optimize_route(self, order_id: UUID) -> Optional[Dict[str, Any]]:
        """Recompute the agent → customer route; None without an agent position"""
        order = await self.get(order_id, lock=True)
        route = self._optimize(order)
        if route:
            await flush_or_conflict(self.db)
        return route

    def _optimize(self, order: Order) -> Optional[Dict[str, Any]]:
        agent = order.delivery_agent
        if agent is None or agent.location is None:
            return None

        origin = agent.location
        destination = order.delivery_location
        distance = distance_km(origin, destination)
        minutes = eta_minutes(distance, agent.vehicle_type)

        now = datetime.utcnow()
        order.route_json = {
            "distance_km": distance,
            "estimated_minutes": minutes,
            "waypoints": [
                {"name": "Current Location", "position": 0, "longitude": origin[0], "latitude": origin[1]},
                {"name": "Delivery Address", "position": 1, "longitude": destination[0], "latitude": destination[1]},
            ],
        }
        order.estimated_delivery_time = now + timedelta(minutes=minutes)
        order.updated_at = now
        return order.route_json

    async def update_agent_location(self, order_id: UUID, point: Point) -> Order:
        """Record the courier's position on the order and refresh the route"""
        lon, lat = validate_point(point)
        order = await self.get(order_id, lock=True)
        if order.delivery_agent_id is None:
            raise InvalidTransitionError("No delivery agent assigned to this order")
        if order.is_terminal:
            raise InvalidTransitionError(f"Order is already {order.status.value}")

        self._append_tracking(order, order.status, (lon, lat), "Location updated")
        self._append_notification(
            order,
            NotificationType.LOCATION_UPDATE,
            f"Your order is on the way! Current location: {lat}, {lon}",
        )
        self._optimize(order)
        await flush_or_conflict(self.db)

        self._queue(order, "location_update", {
            "longitude": lon,
            "latitude": lat,
            "route": order.route_json,
        })
        return order

    async def push_notification(self, order_id: UUID, type: NotificationType, message: str) -> OrderNotification:
        order = await self.get(order_id, lock=True)
        notification = self._append_notification(order, _parse_enum(NotificationType, type, "type"), message)
        await flush_or_conflict(self.db)
        return notification

    async def mark_notifications_read(self, order_id: UUID, notification_ids: Iterable[Any]) -> int:
        """Flag the given notifications read; unknown ids are ignored"""
        wanted = {str(n) for n in notification_ids}
        order = await self.get(order_id, lock=True)

        changed = 0
        for notification in order.notifications:
            if str(notification.id) in wanted and not notification.read:
                notification.read = True
                changed += 1

        if changed:
            order.updated_at = datetime.utcnow()
            await flush_or_conflict(self.db)
        return changed

    async def rate(self, order_id: UUID, rating: int, feedback: Optional[str] = None) -> Order:
        """Attach the customer's rating to a delivered order, once"""
        if not isinstance(rating, int) or not 1 <= rating <= 5:
            raise InvalidInputError("Rating must be between 1 and 5", field="rating")

        order = await self.get(order_id, lock=True)
        if order.status != OrderStatus.DELIVERED:
            raise InvalidTransitionError("Only delivered orders can be rated")
        if order.rating is not None:
            raise InvalidTransitionError("Order has already been rated")

        order.rating = rating
        order.feedback = feedback
        order.updated_at = datetime.utcnow()
        await flush_or_conflict(self.db)

        if order.delivery_agent_id is not None:
            await self.agents.update_rating(order.delivery_agent_id, rating)
        return order

    async def set_payment_status(self, order_id: UUID, payment_status: PaymentStatus) -> Order:
        payment_status = _parse_enum(PaymentStatus, payment_status, "payment_status")
        order = await self.get(order_id, lock=True)

        if payment_status not in PAYMENT_TRANSITIONS[order.payment_status]:
            raise InvalidTransitionError(
                f"Cannot change payment from {order.payment_status.value} to {payment_status.value}"
            )

        order.payment_status = payment_status
        order.updated_at = datetime.utcnow()
        await flush_or_conflict(self.db)

        logger.info("Payment status changed", order_id=str(order.id), payment_status=payment_status.value)
        return order

    def _append_tracking(
        self,
        order: Order,
        status: OrderStatus,
        point: Optional[Point] = None,
        description: Optional[str] = None,
    ) -> OrderTrackingEvent:
        now = datetime.utcnow()
        event = OrderTrackingEvent(
            position=len(order.tracking_events),
            status=status,
            longitude=point[0] if point else None,
            latitude=point[1] if point else None,
            description=description or f"Order status changed to {status.value}",
            created_at=now,
        )
        order.tracking_events.append(event)
        # Touching the row bumps the version so concurrent writers conflict
        order.updated_at = now
        return event

    def _append_notification(self, order: Order, type: NotificationType, message: str) -> OrderNotification:
        now = datetime.utcnow()
        notification = OrderNotification(
            position=len(order.notifications),
            type=type,
            message=message,
            read=False,
            created_at=now,
        )
        order.notifications.append(notification)
        order.updated_at = now
        self._queue(order, "notification", {"type": type.value, "message": message})
        return notification

    def _queue(self, order: Order, event: str, data: Dict[str, Any]) -> None:
        self._events.append((order_room(order.id), event, {"order_id": str(order.id), **data}))

    async def publish_events(self) -> None:
        """Emit events queued by committed operations"""
        events, self._events = self._events, []
        if self.notifier is None:
            return

        for room, event, data in events:
            await self.notifier.emit(room, event, data)

            if (
                event == "notification"
                and settings.sms_notifications_enabled
                and data["type"] == NotificationType.STATUS_UPDATE.value
            ):
                from dispatch.jobs.tasks import send_order_sms
                send_order_sms.delay(data["order_id"], data["message"])
