"""Order model with its tracking history and notifications"""

import uuid
import enum
from datetime import datetime
from sqlalchemy import (
    Column,
    String,
    DateTime,
    ForeignKey,
    JSON,
    Text,
    Integer,
    Float,
    Boolean,
    Enum,
    Uuid,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from dispatch.database import Base


class OrderStatus(str, enum.Enum):
    """Order lifecycle states, in forward order"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class OrderPriority(str, enum.Enum):
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class NotificationType(str, enum.Enum):
    STATUS_UPDATE = "status_update"
    LOCATION_UPDATE = "location_update"
    DELAY = "delay"
    ARRIVAL = "arrival"


class Order(Base):
    """Delivery orders"""
    __tablename__ = "orders"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    restaurant_id = Column(Uuid, ForeignKey("restaurants.id"), nullable=False)
    delivery_agent_id = Column(Uuid, ForeignKey("delivery_agents.id"))

    # Order details
    # [{"menu_item_id": "...", "name": "...", "quantity": 2, "unit_price_cents": 1000}, ...]
    items_json = Column(JSON, nullable=False)
    total_cents = Column(Integer, nullable=False, default=0)

    # Status
    status = Column(Enum(OrderStatus), default=OrderStatus.PENDING, nullable=False)
    payment_status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    priority = Column(Enum(OrderPriority), default=OrderPriority.NORMAL, nullable=False)

    # Delivery address
    delivery_street = Column(String(255), nullable=False)
    delivery_city = Column(String(100), nullable=False)
    delivery_state = Column(String(50))
    delivery_zip_code = Column(String(20))
    delivery_latitude = Column(Float, nullable=False)
    delivery_longitude = Column(Float, nullable=False)
    special_instructions = Column(Text)

    # Timing
    assigned_at = Column(DateTime)
    estimated_delivery_time = Column(DateTime)
    actual_delivery_time = Column(DateTime)

    # Customer-requested delivery window
    preferred_delivery_start = Column(DateTime)
    preferred_delivery_end = Column(DateTime)
    delivery_time_flexible = Column(Boolean, default=False, nullable=False)

    # {"distance_km": 1.2, "estimated_minutes": 4.8, "waypoints": [...]}
    route_json = Column(JSON)

    # Feedback, set once after delivery
    rating = Column(Integer)
    feedback = Column(Text)

    # Optimistic lock counter
    version = Column(Integer, nullable=False, default=1)

    # Metadata
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    customer = relationship("User", foreign_keys=[customer_id], lazy="selectin")
    restaurant = relationship("Restaurant", lazy="selectin")
    delivery_agent = relationship("DeliveryAgent", foreign_keys=[delivery_agent_id], lazy="selectin")
    tracking_events = relationship(
        "OrderTrackingEvent",
        back_populates="order",
        order_by="OrderTrackingEvent.position",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    notifications = relationship(
        "OrderNotification",
        back_populates="order",
        order_by="OrderNotification.position",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def delivery_location(self):
        """Delivery (longitude, latitude)"""
        return (self.delivery_longitude, self.delivery_latitude)

    @property
    def is_terminal(self) -> bool:
        return self.status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class OrderTrackingEvent(Base):
    """Append-only tracking history entry"""
    __tablename__ = "order_tracking_events"
    __table_args__ = (UniqueConstraint("order_id", "position", name="uq_tracking_order_position"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id"), nullable=False)
    position = Column(Integer, nullable=False)
    status = Column(Enum(OrderStatus), nullable=False)
    latitude = Column(Float)
    longitude = Column(Float)
    description = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    order = relationship("Order", back_populates="tracking_events")


class OrderNotification(Base):
    """Customer-facing notification with its read flag"""
    __tablename__ = "order_notifications"
    __table_args__ = (UniqueConstraint("order_id", "position", name="uq_notification_order_position"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id"), nullable=False)
    position = Column(Integer, nullable=False)
    type = Column(Enum(NotificationType), nullable=False)
    message = Column(Text)
    read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    order = relationship("Order", back_populates="notifications")
