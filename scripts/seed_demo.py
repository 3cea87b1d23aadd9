#!/usr/bin/env python3
"""
Seed script to create a demo restaurant, its menu and a few couriers
"""

import asyncio
import uuid

from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Couriers around lower Manhattan: (name, email, vehicle, lon, lat, rating)
DEMO_AGENTS = [
    ("Ana Ruiz", "ana@example.com", "bicycle", -74.0060, 40.7128, 4.9),
    ("Ben Okafor", "ben@example.com", "motorcycle", -74.0020, 40.7150, 4.7),
    ("Chen Wei", "chen@example.com", "car", -73.9980, 40.7190, 4.5),
]


async def seed_demo_data():
    """Seed demo data for development"""
    from sqlalchemy import select
    from dispatch.database import SessionLocal, engine, Base
    from dispatch.models import (
        AgentStatus,
        DeliveryAgent,
        MenuItem,
        Restaurant,
        User,
        UserRole,
        VehicleType,
    )
    
    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    async with SessionLocal() as db:
        result = await db.execute(
            select(Restaurant).where(Restaurant.name == "Mario's Italian Kitchen")
        )
        if result.scalar_one_or_none():
            print("Demo data already exists. Skipping...")
            return
        
        print("Creating demo users...")
        
        admin = User(
            id=uuid.uuid4(),
            email="admin@example.com",
            hashed_password=pwd_context.hash("admin123"),
            full_name="Platform Admin",
            role=UserRole.ADMIN,
        )
        owner = User(
            id=uuid.uuid4(),
            email="owner@example.com",
            hashed_password=pwd_context.hash("owner123"),
            full_name="Mario Rossi",
            phone="+15551234567",
            role=UserRole.RESTAURANT,
        )
        customer = User(
            id=uuid.uuid4(),
            email="customer@example.com",
            hashed_password=pwd_context.hash("customer123"),
            full_name="Jane Customer",
            phone="+15557654321",
            role=UserRole.CUSTOMER,
        )
        db.add_all([admin, owner, customer])
        await db.flush()
        
        restaurant = Restaurant(
            id=uuid.uuid4(),
            owner_id=owner.id,
            name="Mario's Italian Kitchen",
            address="123 Main Street",
            city="New York",
            longitude=-74.0050,
            latitude=40.7140,
        )
        db.add(restaurant)
        await db.flush()
        
        print(f"Created restaurant: {restaurant.name} (ID: {restaurant.id})")
        
        print("Creating menu items...")
        
        menu_items = [
            ("Margherita Pizza", "San Marzano tomatoes, fresh mozzarella, basil", 1499),
            ("Pepperoni Pizza", "Classic pepperoni with mozzarella", 1699),
            ("Spaghetti Carbonara", "Guanciale, egg yolk, pecorino", 1799),
            ("Caesar Salad", "Romaine, parmesan, croutons", 1099),
            ("Tiramisu", "Espresso-soaked ladyfingers, mascarpone", 899),
        ]
        for name, description, price_cents in menu_items:
            db.add(MenuItem(
                restaurant_id=restaurant.id,
                name=name,
                description=description,
                price_cents=price_cents,
            ))
        
        print("Creating delivery agents...")
        
        for name, email, vehicle, lon, lat, rating in DEMO_AGENTS:
            user = User(
                id=uuid.uuid4(),
                email=email,
                hashed_password=pwd_context.hash("courier123"),
                full_name=name,
                role=UserRole.DELIVERY,
            )
            db.add(user)
            await db.flush()
            
            db.add(DeliveryAgent(
                user_id=user.id,
                status=AgentStatus.AVAILABLE,
                vehicle_type=VehicleType(vehicle),
                longitude=lon,
                latitude=lat,
                rating=rating,
            ))
        
        await db.commit()
        
        print(f"""
========================================
Demo data created successfully!
========================================

Restaurant: {restaurant.name}
Restaurant ID: {restaurant.id}

Logins:
  Admin:      admin@example.com / admin123
  Restaurant: owner@example.com / owner123
  Customer:   customer@example.com / customer123
  Couriers:   {", ".join(a[1] for a in DEMO_AGENTS)} / courier123

API Docs: http://localhost:8000/docs
========================================
""")


if __name__ == "__main__":
    asyncio.run(seed_demo_data())
