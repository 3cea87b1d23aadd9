"""User model for platform authentication"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, Enum, Uuid
import enum

from dispatch.database import Base


class UserRole(str, enum.Enum):
    """User roles for RBAC"""
    CUSTOMER = "customer"
    DELIVERY = "delivery"
    RESTAURANT = "restaurant"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: str) -> "UserRole":
        """Parse a role claim, accepting the delivery_agent alias"""
        if value == "delivery_agent":
            return cls.DELIVERY
        return cls(value)


class User(Base):
    """Platform users: customers, couriers, restaurant owners and admins"""
    __tablename__ = "users"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    
    # Authentication
    email = Column(String(255), unique=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    
    # Profile
    full_name = Column(String(255))
    phone = Column(String(20))
    
    # Role
    role = Column(Enum(UserRole), default=UserRole.CUSTOMER, nullable=False)
    
    # Status
    is_active = Column(Boolean, default=True)
    
    # Tokens
    refresh_token = Column(String(500))
    
    # Timestamps
    last_login = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
