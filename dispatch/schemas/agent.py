"""Delivery agent schemas"""

from datetime import datetime
from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel

from dispatch.models.agent import AgentStatus, VehicleType


class AgentResponse(BaseModel):
    """Delivery agent profile"""
    id: UUID
    user_id: UUID
    status: AgentStatus
    vehicle_type: VehicleType
    longitude: Optional[float]
    latitude: Optional[float]
    current_order_id: Optional[UUID]
    rating: float
    total_deliveries: int
    average_delivery_time: float
    last_active: Optional[datetime]

    class Config:
        from_attributes = True


class AgentStatusUpdate(BaseModel):
    """Go online or offline"""
    status: AgentStatus


class LocationUpdate(BaseModel):
    """Position report"""
    longitude: float
    latitude: float


class NearbyAgentsResponse(BaseModel):
    items: List[AgentResponse]
    total: int
