"""Delivery agent directory: availability, location and workload"""

import math
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from dispatch.database import flush_or_conflict
from dispatch.exceptions import AgentUnavailableError, InvalidTransitionError, NotFoundError
from dispatch.models.agent import AgentStatus, DeliveryAgent
from dispatch.services.geo import EARTH_RADIUS_KM, Point, distance_km, validate_point

logger = structlog.get_logger()

DEFAULT_SEARCH_RADIUS_KM = 5.0


def _bounding_box(lon: float, lat: float, radius_km: float) -> list:
    """
    Coordinate ranges that contain every point within radius_km of origin.

    The longitude range widens with latitude and wraps at the antimeridian;
    near a pole the circle covers all longitudes and only latitude is
    bounded.
    """
    radius = radius_km / EARTH_RADIUS_KM
    lat_delta = math.degrees(radius)
    conditions = [DeliveryAgent.latitude.between(lat - lat_delta, lat + lat_delta)]

    if abs(lat) + lat_delta >= 90:
        return conditions

    ratio = math.sin(radius) / math.cos(math.radians(lat))
    if ratio >= 1:
        return conditions
    lon_delta = math.degrees(math.asin(ratio))
    if lon_delta >= 180:
        return conditions

    west, east = lon - lon_delta, lon + lon_delta
    if west < -180:
        conditions.append(or_(DeliveryAgent.longitude >= west + 360, DeliveryAgent.longitude <= east))
    elif east > 180:
        conditions.append(or_(DeliveryAgent.longitude >= west, DeliveryAgent.longitude <= east - 360))
    else:
        conditions.append(DeliveryAgent.longitude.between(west, east))
    return conditions


class AgentDirectory:
    """Tracks courier availability and answers nearest-agent queries"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, agent_id: UUID) -> DeliveryAgent:
        agent = await self.db.get(DeliveryAgent, agent_id)
        if not agent:
            raise NotFoundError("delivery agent", agent_id)
        return agent

    async def get_by_user(self, user_id: UUID) -> DeliveryAgent:
        """Agent profile linked to a user account"""
        result = await self.db.execute(
            select(DeliveryAgent).where(DeliveryAgent.user_id == user_id)
        )
        agent = result.scalar_one_or_none()
        if not agent:
            raise NotFoundError("delivery agent")
        return agent

    async def find_nearest_available(
        self,
        origin: Point,
        max_distance_km: float = DEFAULT_SEARCH_RADIUS_KM,
        exclude: Optional[UUID] = None,
    ) -> List[DeliveryAgent]:
        """
        Available agents within max_distance_km of origin.

        Ordered by rating (highest first), then total deliveries (fewest
        first). Distance only gates inclusion and breaks remaining ties.
        An empty list means nobody qualified.
        """
        lon, lat = validate_point(origin, "origin")

        # Bounding-box prefilter, exact haversine check below
        query = select(DeliveryAgent).where(
            DeliveryAgent.status == AgentStatus.AVAILABLE,
            DeliveryAgent.is_active == True,
            DeliveryAgent.current_order_id.is_(None),
            *_bounding_box(lon, lat, max_distance_km),
        )
        if exclude is not None:
            query = query.where(DeliveryAgent.id != exclude)

        result = await self.db.execute(query)

        candidates = []
        for agent in result.scalars().all():
            distance = distance_km((lon, lat), agent.location)
            if distance <= max_distance_km:
                candidates.append((agent, distance))

        candidates.sort(key=lambda c: (-c[0].rating, c[0].total_deliveries, c[1]))

        logger.debug(
            "Agent search",
            origin=[lon, lat],
            radius_km=max_distance_km,
            found=len(candidates),
        )
        return [agent for agent, _ in candidates]

    async def assign(self, agent_id: UUID, order_id: UUID) -> DeliveryAgent:
        """
        Bind an available agent to an order.

        A single conditional UPDATE, so two concurrent callers can never
        both see the agent as available.
        """
        result = await self.db.execute(
            update(DeliveryAgent)
            .where(
                DeliveryAgent.id == agent_id,
                DeliveryAgent.status == AgentStatus.AVAILABLE,
                DeliveryAgent.current_order_id.is_(None),
            )
            .values(
                status=AgentStatus.BUSY,
                current_order_id=order_id,
                last_active=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            agent = await self.db.get(DeliveryAgent, agent_id, populate_existing=True)
            if not agent:
                raise NotFoundError("delivery agent", agent_id)
            logger.info(
                "Agent assignment lost",
                agent_id=str(agent_id),
                order_id=str(order_id),
                agent_status=agent.status.value,
            )
            raise AgentUnavailableError(f"Delivery agent '{agent_id}' is not available")

        agent = await self.db.get(DeliveryAgent, agent_id, populate_existing=True)
        logger.info("Agent assigned", agent_id=str(agent_id), order_id=str(order_id))
        return agent

    async def release(self, agent_id: UUID, delivery_minutes: float) -> DeliveryAgent:
        """Free an agent after a completed delivery and update its aggregates"""
        agent = await self.get(agent_id)

        agent.current_order_id = None
        agent.status = AgentStatus.AVAILABLE
        agent.total_deliveries = (agent.total_deliveries or 0) + 1

        # Two-term blend kept for compatibility with existing agent stats
        if not agent.average_delivery_time:
            agent.average_delivery_time = delivery_minutes
        else:
            agent.average_delivery_time = (agent.average_delivery_time + delivery_minutes) / 2

        agent.last_active = datetime.utcnow()
        await flush_or_conflict(self.db)

        logger.info(
            "Agent released",
            agent_id=str(agent_id),
            delivery_minutes=round(delivery_minutes, 2),
            total_deliveries=agent.total_deliveries,
        )
        return agent

    async def update_rating(self, agent_id: UUID, rating: float) -> DeliveryAgent:
        """Fold a customer rating into the agent's score"""
        agent = await self.get(agent_id)

        # Same two-term blend as average_delivery_time; an unrated agent takes the value
        if not agent.rating:
            agent.rating = float(rating)
        else:
            agent.rating = (agent.rating + rating) / 2

        await flush_or_conflict(self.db)

        logger.info("Agent rated", agent_id=str(agent_id), rating=rating, score=round(agent.rating, 2))
        return agent

    async def unbind(self, agent_id: UUID) -> DeliveryAgent:
        """Return an agent to the pool without counting a delivery"""
        agent = await self.get(agent_id)
        agent.current_order_id = None
        agent.status = AgentStatus.AVAILABLE
        await flush_or_conflict(self.db)
        return agent

    async def update_location(self, agent_id: UUID, point: Point) -> DeliveryAgent:
        """Overwrite the agent's position and refresh last_active"""
        lon, lat = validate_point(point)
        agent = await self.get(agent_id)
        agent.longitude = lon
        agent.latitude = lat
        agent.last_active = datetime.utcnow()
        await flush_or_conflict(self.db)
        return agent

    async def set_availability(self, agent_id: UUID, status: AgentStatus) -> DeliveryAgent:
        """Let an agent go online or offline; busy is only entered through assign"""
        agent = await self.get(agent_id)
        status = AgentStatus(status)

        if status == AgentStatus.BUSY:
            raise InvalidTransitionError("Agents become busy only through order assignment")
        if agent.status == AgentStatus.BUSY:
            raise InvalidTransitionError("Agent is on a delivery")

        agent.status = status
        agent.last_active = datetime.utcnow()
        await flush_or_conflict(self.db)

        logger.info("Agent availability changed", agent_id=str(agent_id), status=status.value)
        return agent
