"""Tracking facade used by the HTTP layer"""

from typing import Any, Dict, Iterable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from dispatch.exceptions import ForbiddenError
from dispatch.models.order import Order, OrderStatus
from dispatch.models.user import UserRole
from dispatch.schemas.order import (
    DeliveryAddress,
    DeliveryTimeWindow,
    NotificationResponse,
    OrderItemResponse,
    TrackingEventResponse,
)
from dispatch.schemas.tracking import NotificationsResponse, TrackingView
from dispatch.services.agents import AgentDirectory
from dispatch.services.geo import Point, validate_point
from dispatch.services.notifier import RealtimeNotifier
from dispatch.services.orders import OrderLedger

logger = structlog.get_logger()


def delivery_address(order: Order) -> DeliveryAddress:
    return DeliveryAddress(
        street=order.delivery_street,
        city=order.delivery_city,
        state=order.delivery_state,
        zip_code=order.delivery_zip_code,
        longitude=order.delivery_longitude,
        latitude=order.delivery_latitude,
    )


def delivery_time_window(order: Order) -> DeliveryTimeWindow:
    return DeliveryTimeWindow(
        start=order.preferred_delivery_start,
        end=order.preferred_delivery_end,
        is_flexible=bool(order.delivery_time_flexible),
    )


class TrackingService:
    """Role-filtered order views and courier location reports"""

    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[RealtimeNotifier] = None,
        ledger: Optional[OrderLedger] = None,
    ):
        self.db = db
        self.ledger = ledger or OrderLedger(db, notifier)
        self.agents: AgentDirectory = self.ledger.agents

    @staticmethod
    def _is_assigned_agent(order: Order, user_id: UUID) -> bool:
        return order.delivery_agent is not None and order.delivery_agent.user_id == user_id

    def _authorize(self, order: Order, role: UserRole, user_id: UUID, allow_restaurant: bool = True) -> None:
        if role == UserRole.ADMIN:
            return
        if order.customer_id == user_id or self._is_assigned_agent(order, user_id):
            return
        if allow_restaurant and order.restaurant is not None and order.restaurant.owner_id == user_id:
            return
        raise ForbiddenError("Not authorized to view this order")

    async def get_tracking_view(self, order_id: UUID, role, user_id: UUID) -> TrackingView:
        """
        Assemble the tracking projection for the requester.

        A pending order with no courier gets one assigned on this path via
        OrderLedger.ensure_assigned.
        """
        role = UserRole.parse(role)
        order = await self.ledger.get(order_id)
        self._authorize(order, role, user_id)

        if order.delivery_agent_id is None and order.status == OrderStatus.PENDING:
            agent = await self.ledger.ensure_assigned(order.id)
            if agent:
                logger.info("Agent assigned on tracking read", order_id=str(order.id), agent_id=str(agent.id))

        view: Dict[str, Any] = {
            "order_id": order.id,
            "status": order.status,
            "items": [OrderItemResponse(**item) for item in order.items_json or []],
            "created_at": order.created_at,
            "estimated_delivery_time": order.estimated_delivery_time,
            "delivery_time_window": delivery_time_window(order),
            "tracking_history": [TrackingEventResponse.model_validate(e) for e in order.tracking_events],
            "notifications": [
                NotificationResponse.model_validate(n) for n in order.notifications if not n.read
            ],
            "route": order.route_json,
            "restaurant": {"name": order.restaurant.name, "address": order.restaurant.address},
        }

        if role == UserRole.CUSTOMER:
            agent = order.delivery_agent
            view["delivery_agent"] = {
                "name": agent.user.full_name if agent.user else None,
                "phone": agent.user.phone if agent.user else None,
                "vehicle": agent.vehicle_type.value,
                "status": agent.status.value,
            } if agent else None

            located = [e for e in order.tracking_events if e.latitude is not None]
            view["current_location"] = {
                "longitude": located[-1].longitude,
                "latitude": located[-1].latitude,
            } if located else None

        if role in (UserRole.DELIVERY, UserRole.ADMIN):
            customer = order.customer
            view["customer"] = {
                "name": customer.full_name if customer else None,
                "phone": customer.phone if customer else None,
                "delivery_address": delivery_address(order),
            }
            view["payment_status"] = order.payment_status

        if role in (UserRole.RESTAURANT, UserRole.ADMIN):
            view["order_value_cents"] = order.total_cents
            view["payment_details"] = {
                "status": order.payment_status,
                "amount_cents": order.total_cents,
            }

        return TrackingView(**view)

    async def report_location(self, order_id: UUID, user_id: UUID, point: Point) -> Optional[Dict[str, Any]]:
        """Courier position report; returns the refreshed route"""
        order = await self.ledger.get(order_id)
        if not self._is_assigned_agent(order, user_id):
            raise ForbiddenError("Only the assigned delivery agent can update this order's location")

        point = validate_point(point)
        await self.agents.update_location(order.delivery_agent_id, point)
        order = await self.ledger.update_agent_location(order.id, point)

        logger.info("Location reported", order_id=str(order.id), agent_id=str(order.delivery_agent_id))
        return order.route_json

    async def get_notifications(self, order_id: UUID, role, user_id: UUID) -> NotificationsResponse:
        role = UserRole.parse(role)
        order = await self.ledger.get(order_id)
        self._authorize(order, role, user_id, allow_restaurant=False)

        notifications = [NotificationResponse.model_validate(n) for n in order.notifications]
        return NotificationsResponse(
            notifications=notifications,
            unread_count=sum(1 for n in notifications if not n.read),
        )

    async def mark_notifications_read(self, order_id: UUID, role, user_id: UUID, notification_ids: Iterable[Any]) -> int:
        role = UserRole.parse(role)
        order = await self.ledger.get(order_id)
        self._authorize(order, role, user_id, allow_restaurant=False)
        return await self.ledger.mark_notifications_read(order.id, notification_ids)

    async def publish_events(self) -> None:
        await self.ledger.publish_events()
