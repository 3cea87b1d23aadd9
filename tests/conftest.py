"""Test configuration and fixtures"""

from typing import Any, Dict, List, Tuple
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from dispatch.main import app
from dispatch.database import Base, get_db
from dispatch.models.agent import DeliveryAgent, AgentStatus, VehicleType
from dispatch.models.restaurant import Restaurant, MenuItem
from dispatch.models.user import User, UserRole
from dispatch.api.auth import create_access_token, get_password_hash
from dispatch.schemas.order import DeliveryAddress, OrderItemCreate
from dispatch.services.notifier import get_notifier
from dispatch.services.orders import OrderLedger


# Test database URL (use in-memory SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_PASSWORD = "testpass123"
TEST_PASSWORD_HASH = get_password_hash(TEST_PASSWORD)

# Delivery point in lower Manhattan; 0.009 degrees of latitude is about 1 km
DELIVERY_POINT = (-74.0060, 40.7128)


def km_north(km: float) -> Tuple[float, float]:
    """A point roughly km kilometres north of the delivery point"""
    return (DELIVERY_POINT[0], DELIVERY_POINT[1] + km / 111.2)


def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


class RecordingNotifier:
    """Stands in for the Redis publisher and keeps what was emitted"""

    def __init__(self):
        self.events: List[Tuple[str, str, Dict[str, Any]]] = []

    async def emit(self, room_id: str, event: str, data: Dict[str, Any]) -> None:
        self.events.append((room_id, event, data))

    def of_type(self, event: str):
        return [e for e in self.events if e[1] == event]


@pytest.fixture
async def test_db():
    """Create test database"""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    
    async with session_factory() as session:
        yield session
    
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    
    await engine.dispose()


async def create_user(db: AsyncSession, role: UserRole, name: str, phone: str = None) -> User:
    user = User(
        id=uuid4(),
        email=f"{name.lower().replace(' ', '.')}@example.com",
        hashed_password=TEST_PASSWORD_HASH,
        full_name=name,
        phone=phone,
        role=role,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def customer(test_db):
    return await create_user(test_db, UserRole.CUSTOMER, "Jane Customer", "+15550000001")


@pytest.fixture
async def other_customer(test_db):
    return await create_user(test_db, UserRole.CUSTOMER, "Other Customer")


@pytest.fixture
async def restaurant_owner(test_db):
    return await create_user(test_db, UserRole.RESTAURANT, "Mario Owner")


@pytest.fixture
async def admin_user(test_db):
    return await create_user(test_db, UserRole.ADMIN, "Admin User")


@pytest.fixture
async def test_restaurant(test_db, restaurant_owner):
    """Create a test restaurant"""
    restaurant = Restaurant(
        id=uuid4(),
        owner_id=restaurant_owner.id,
        name="Test Kitchen",
        address="1 Test Plaza",
        city="New York",
        longitude=-74.0050,
        latitude=40.7140,
        is_active=True,
    )
    test_db.add(restaurant)
    await test_db.commit()
    return restaurant


@pytest.fixture
async def test_menu_items(test_db, test_restaurant):
    """Pizza at 10.00, salad at 5.00 and an unavailable soda"""
    items = [
        MenuItem(restaurant_id=test_restaurant.id, name="Pizza", price_cents=1000, is_available=True),
        MenuItem(restaurant_id=test_restaurant.id, name="Salad", price_cents=500, is_available=True),
        MenuItem(restaurant_id=test_restaurant.id, name="Soda", price_cents=200, is_available=False),
    ]
    for item in items:
        test_db.add(item)
    await test_db.commit()
    return items


@pytest.fixture
def make_agent(test_db):
    """Factory for couriers with their user accounts"""
    counter = {"n": 0}

    async def _make(
        point=DELIVERY_POINT,
        rating: float = 4.5,
        total_deliveries: int = 0,
        status: AgentStatus = AgentStatus.AVAILABLE,
        vehicle_type: VehicleType = VehicleType.CAR,
        average_delivery_time: float = 0.0,
    ) -> DeliveryAgent:
        counter["n"] += 1
        user = await create_user(
            test_db, UserRole.DELIVERY, f"Courier {counter['n']}", f"+1555100000{counter['n']}"
        )
        agent = DeliveryAgent(
            id=uuid4(),
            user_id=user.id,
            user=user,
            status=status,
            is_active=True,
            longitude=point[0] if point else None,
            latitude=point[1] if point else None,
            vehicle_type=vehicle_type,
            rating=rating,
            total_deliveries=total_deliveries,
            average_delivery_time=average_delivery_time,
        )
        test_db.add(agent)
        await test_db.commit()
        return agent

    return _make


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def ledger(test_db, notifier):
    return OrderLedger(test_db, notifier)


def order_items(menu_items, pizzas: int = 2, salads: int = 1) -> List[OrderItemCreate]:
    return [
        OrderItemCreate(menu_item_id=menu_items[0].id, quantity=pizzas),
        OrderItemCreate(menu_item_id=menu_items[1].id, quantity=salads),
    ]


def delivery_address(point=DELIVERY_POINT) -> DeliveryAddress:
    return DeliveryAddress(
        street="350 Broadway",
        city="New York",
        state="NY",
        zip_code="10013",
        longitude=point[0],
        latitude=point[1],
    )


@pytest.fixture
async def pending_order(test_db, customer, test_restaurant, test_menu_items):
    """A committed pending order worth 25.00"""
    order = await OrderLedger(test_db).create(
        customer_id=customer.id,
        restaurant_id=test_restaurant.id,
        items=order_items(test_menu_items),
        delivery_address=delivery_address(),
    )
    await test_db.commit()
    return order


@pytest.fixture
async def assigned_order(test_db, ledger, pending_order, make_agent):
    """A confirmed order with a courier 1 km away; returns (order, agent)"""
    agent = await make_agent(point=km_north(1.0), vehicle_type=VehicleType.BICYCLE)
    await ledger.assign_agent(pending_order.id)
    await test_db.commit()
    await ledger.publish_events()
    order = await ledger.get(pending_order.id)
    return order, agent


@pytest.fixture
async def client(test_db, notifier):
    """Create test client with overridden database and notifier"""
    async def override_get_db():
        yield test_db
    
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    
    app.dependency_overrides.clear()
