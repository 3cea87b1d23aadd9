"""Tracking view schemas"""

from datetime import datetime
from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel

from dispatch.models.order import OrderStatus, PaymentStatus
from dispatch.schemas.order import (
    DeliveryAddress,
    DeliveryTimeWindow,
    NotificationResponse,
    OrderItemResponse,
    RouteResponse,
    TrackingEventResponse,
)


class RestaurantSummary(BaseModel):
    name: str
    address: Optional[str]


class AgentContact(BaseModel):
    """Courier contact shown to the customer"""
    name: Optional[str]
    phone: Optional[str]
    vehicle: str
    status: str


class CustomerContact(BaseModel):
    """Customer contact shown to couriers and admins"""
    name: Optional[str]
    phone: Optional[str]
    delivery_address: DeliveryAddress


class Location(BaseModel):
    longitude: float
    latitude: float


class PaymentDetails(BaseModel):
    status: PaymentStatus
    amount_cents: int


class TrackingView(BaseModel):
    """
    Role-filtered order tracking projection.

    Role-specific fields are left unset (and dropped from the response)
    when the requester's role does not grant them.
    """
    order_id: UUID
    status: OrderStatus
    items: List[OrderItemResponse]
    created_at: datetime
    estimated_delivery_time: Optional[datetime]
    delivery_time_window: DeliveryTimeWindow
    tracking_history: List[TrackingEventResponse]
    notifications: List[NotificationResponse]
    route: Optional[RouteResponse]
    restaurant: RestaurantSummary

    # Customer
    delivery_agent: Optional[AgentContact] = None
    current_location: Optional[Location] = None

    # Delivery agent / admin
    customer: Optional[CustomerContact] = None
    payment_status: Optional[PaymentStatus] = None

    # Restaurant / admin
    order_value_cents: Optional[int] = None
    payment_details: Optional[PaymentDetails] = None


class LocationReport(BaseModel):
    """Courier position report for an order"""
    longitude: float
    latitude: float


class LocationReportResponse(BaseModel):
    message: str
    route: Optional[RouteResponse]


class NotificationsResponse(BaseModel):
    notifications: List[NotificationResponse]
    unread_count: int


class MarkReadRequest(BaseModel):
    notification_ids: List[UUID]


class MarkReadResponse(BaseModel):
    message: str
    updated: int
