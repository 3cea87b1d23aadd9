"""Database models"""

from dispatch.models.user import User, UserRole
from dispatch.models.restaurant import Restaurant, MenuItem
from dispatch.models.agent import DeliveryAgent, AgentStatus, VehicleType
from dispatch.models.order import (
    Order,
    OrderTrackingEvent,
    OrderNotification,
    OrderStatus,
    PaymentStatus,
    OrderPriority,
    NotificationType,
)

__all__ = [
    "User",
    "UserRole",
    "Restaurant",
    "MenuItem",
    "DeliveryAgent",
    "AgentStatus",
    "VehicleType",
    "Order",
    "OrderTrackingEvent",
    "OrderNotification",
    "OrderStatus",
    "PaymentStatus",
    "OrderPriority",
    "NotificationType",
]
