"""Order schemas"""

from datetime import datetime
from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel

from dispatch.models.order import OrderStatus, PaymentStatus, OrderPriority, NotificationType


class DeliveryAddress(BaseModel):
    """Delivery address with coordinates"""
    street: str
    city: str
    state: Optional[str] = None
    zip_code: Optional[str] = None
    longitude: float
    latitude: float


class OrderItemCreate(BaseModel):
    """Line item in a create order request; price comes from the menu"""
    menu_item_id: UUID
    quantity: int = 1


class DeliveryTimeWindow(BaseModel):
    """Preferred delivery slot; both ends optional"""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    is_flexible: bool = False


class OrderCreate(BaseModel):
    """Create order request"""
    restaurant_id: UUID
    items: List[OrderItemCreate]
    delivery_address: DeliveryAddress
    special_instructions: Optional[str] = None
    priority: OrderPriority = OrderPriority.NORMAL
    delivery_time_window: Optional[DeliveryTimeWindow] = None


class OrderStatusUpdate(BaseModel):
    """Advance order status request"""
    status: OrderStatus
    longitude: Optional[float] = None
    latitude: Optional[float] = None
    description: Optional[str] = None


class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus


class OrderRatingCreate(BaseModel):
    """Post-delivery rating"""
    rating: int
    feedback: Optional[str] = None


class OrderItemResponse(BaseModel):
    """Order item in response"""
    menu_item_id: UUID
    name: str
    quantity: int
    unit_price_cents: int


class TrackingEventResponse(BaseModel):
    """Tracking history entry"""
    status: OrderStatus
    longitude: Optional[float] = None
    latitude: Optional[float] = None
    description: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationResponse(BaseModel):
    """Order notification"""
    id: UUID
    type: NotificationType
    message: Optional[str] = None
    read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class Waypoint(BaseModel):
    name: str
    position: int
    longitude: float
    latitude: float


class RouteResponse(BaseModel):
    """Current agent → customer route estimate"""
    distance_km: float
    estimated_minutes: float
    waypoints: List[Waypoint]


class OrderResponse(BaseModel):
    """Order response"""
    id: UUID
    customer_id: UUID
    restaurant_id: UUID
    delivery_agent_id: Optional[UUID]
    items: List[OrderItemResponse]
    total_cents: int
    status: OrderStatus
    payment_status: PaymentStatus
    priority: OrderPriority
    delivery_address: DeliveryAddress
    special_instructions: Optional[str]
    delivery_time_window: DeliveryTimeWindow
    assigned_at: Optional[datetime]
    estimated_delivery_time: Optional[datetime]
    actual_delivery_time: Optional[datetime]
    route: Optional[RouteResponse]
    rating: Optional[int]
    feedback: Optional[str]
    tracking_history: List[TrackingEventResponse]
    created_at: datetime
    updated_at: datetime


class OrderListResponse(BaseModel):
    """Paginated order list"""
    items: List[OrderResponse]
    total: int
    page: int
    page_size: int
