"""Pydantic schemas for request/response validation"""

from dispatch.schemas.auth import (
    Token,
    RefreshRequest,
    UserResponse,
)
from dispatch.schemas.order import (
    DeliveryAddress,
    DeliveryTimeWindow,
    OrderItemCreate,
    OrderCreate,
    OrderStatusUpdate,
    PaymentStatusUpdate,
    OrderRatingCreate,
    OrderResponse,
    OrderListResponse,
    RouteResponse,
)
from dispatch.schemas.agent import (
    AgentResponse,
    AgentStatusUpdate,
    LocationUpdate,
    NearbyAgentsResponse,
)
from dispatch.schemas.tracking import (
    TrackingView,
    LocationReport,
    LocationReportResponse,
    NotificationsResponse,
    MarkReadRequest,
    MarkReadResponse,
)

__all__ = [
    "Token",
    "RefreshRequest",
    "UserResponse",
    "DeliveryAddress",
    "DeliveryTimeWindow",
    "OrderItemCreate",
    "OrderCreate",
    "OrderStatusUpdate",
    "PaymentStatusUpdate",
    "OrderRatingCreate",
    "OrderResponse",
    "OrderListResponse",
    "RouteResponse",
    "AgentResponse",
    "AgentStatusUpdate",
    "LocationUpdate",
    "NearbyAgentsResponse",
    "TrackingView",
    "LocationReport",
    "LocationReportResponse",
    "NotificationsResponse",
    "MarkReadRequest",
    "MarkReadResponse",
]
