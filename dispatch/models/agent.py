"""Delivery agent model"""

import uuid
import enum
from datetime import datetime
from sqlalchemy import Column, String, Integer, Boolean, DateTime, Float, ForeignKey, Enum, Uuid
from sqlalchemy.orm import relationship

from dispatch.database import Base


class AgentStatus(str, enum.Enum):
    """Courier availability"""
    AVAILABLE = "available"
    BUSY = "busy"
    OFFLINE = "offline"


class VehicleType(str, enum.Enum):
    BICYCLE = "bicycle"
    MOTORCYCLE = "motorcycle"
    CAR = "car"


class DeliveryAgent(Base):
    """Couriers fulfilling the delivery leg of orders"""
    __tablename__ = "delivery_agents"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), unique=True, nullable=False)
    
    # Availability
    status = Column(Enum(AgentStatus), default=AgentStatus.OFFLINE, nullable=False)
    is_active = Column(Boolean, default=True)
    
    # Last reported position, unset until the first location report
    latitude = Column(Float)
    longitude = Column(Float)
    last_active = Column(DateTime, default=datetime.utcnow)
    
    # Set iff status is busy; plain column, orders reference agents the other way
    current_order_id = Column(Uuid)
    
    # Vehicle
    vehicle_type = Column(Enum(VehicleType), nullable=False)
    vehicle_make = Column(String(100))
    vehicle_model = Column(String(100))
    license_plate = Column(String(20))
    
    # Rolling aggregates, updated at delivery completion
    rating = Column(Float, default=0.0, nullable=False)
    total_deliveries = Column(Integer, default=0, nullable=False)
    average_delivery_time = Column(Float, default=0.0, nullable=False)  # minutes
    
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    # Relationships
    user = relationship("User", lazy="selectin")
    
    @property
    def location(self):
        """Current (longitude, latitude) or None"""
        if self.latitude is None or self.longitude is None:
            return None
        return (self.longitude, self.latitude)
