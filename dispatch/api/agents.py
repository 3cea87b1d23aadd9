"""Delivery agent API endpoints"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch.config import settings
from dispatch.database import get_db, commit_or_conflict
from dispatch.models.user import User, UserRole
from dispatch.schemas.agent import (
    AgentResponse,
    AgentStatusUpdate,
    LocationUpdate,
    NearbyAgentsResponse,
)
from dispatch.api.auth import require_role
from dispatch.services.agents import AgentDirectory

router = APIRouter()


@router.get("/me", response_model=AgentResponse)
async def get_my_profile(
    current_user: User = Depends(require_role(UserRole.DELIVERY)),
    db: AsyncSession = Depends(get_db),
):
    """Current courier's profile"""
    return await AgentDirectory(db).get_by_user(current_user.id)


@router.put("/me/status", response_model=AgentResponse)
async def update_my_status(
    update: AgentStatusUpdate,
    current_user: User = Depends(require_role(UserRole.DELIVERY)),
    db: AsyncSession = Depends(get_db),
):
    """Go available or offline"""
    directory = AgentDirectory(db)
    agent = await directory.get_by_user(current_user.id)
    agent = await directory.set_availability(agent.id, update.status)
    await commit_or_conflict(db)
    return agent


@router.put("/me/location", response_model=AgentResponse)
async def update_my_location(
    update: LocationUpdate,
    current_user: User = Depends(require_role(UserRole.DELIVERY)),
    db: AsyncSession = Depends(get_db),
):
    """Position report outside of an order (e.g. while waiting for work)"""
    directory = AgentDirectory(db)
    agent = await directory.get_by_user(current_user.id)
    agent = await directory.update_location(agent.id, (update.longitude, update.latitude))
    await commit_or_conflict(db)
    return agent


@router.get("/nearby", response_model=NearbyAgentsResponse)
async def nearby_agents(
    longitude: float,
    latitude: float,
    radius_km: Optional[float] = Query(None, gt=0, le=50),
    current_user: User = Depends(require_role(UserRole.RESTAURANT, UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    """Available agents around a point, best candidates first"""
    agents = await AgentDirectory(db).find_nearest_available(
        (longitude, latitude), radius_km or settings.agent_search_radius_km
    )
    return NearbyAgentsResponse(
        items=[AgentResponse.model_validate(agent) for agent in agents],
        total=len(agents),
    )
