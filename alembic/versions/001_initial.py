"""Initial migration

Revision ID: 001
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

USER_ROLES = ('CUSTOMER', 'DELIVERY', 'RESTAURANT', 'ADMIN')
AGENT_STATUSES = ('AVAILABLE', 'BUSY', 'OFFLINE')
VEHICLE_TYPES = ('BICYCLE', 'MOTORCYCLE', 'CAR')
ORDER_STATUSES = ('PENDING', 'CONFIRMED', 'PREPARING', 'READY', 'PICKED_UP', 'IN_TRANSIT', 'DELIVERED', 'CANCELLED')
PAYMENT_STATUSES = ('PENDING', 'PAID', 'FAILED', 'REFUNDED')
PRIORITIES = ('NORMAL', 'HIGH', 'URGENT')
NOTIFICATION_TYPES = ('STATUS_UPDATE', 'LOCATION_UPDATE', 'DELAY', 'ARRIVAL')


def upgrade() -> None:
    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), unique=True, nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255)),
        sa.Column('phone', sa.String(20)),
        sa.Column('role', sa.Enum(*USER_ROLES, name='userrole'), nullable=False),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column('refresh_token', sa.String(500)),
        sa.Column('last_login', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )
    
    # Create restaurants table
    op.create_table(
        'restaurants',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('owner_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('address', sa.Text()),
        sa.Column('city', sa.String(100)),
        sa.Column('latitude', sa.Float()),
        sa.Column('longitude', sa.Float()),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )
    
    # Create menu_items table
    op.create_table(
        'menu_items',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('restaurant_id', sa.Uuid(), sa.ForeignKey('restaurants.id'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('is_available', sa.Boolean(), default=True),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )
    
    # Create delivery_agents table
    op.create_table(
        'delivery_agents',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), unique=True, nullable=False),
        sa.Column('status', sa.Enum(*AGENT_STATUSES, name='agentstatus'), nullable=False),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column('latitude', sa.Float()),
        sa.Column('longitude', sa.Float()),
        sa.Column('last_active', sa.DateTime()),
        sa.Column('current_order_id', sa.Uuid()),
        sa.Column('vehicle_type', sa.Enum(*VEHICLE_TYPES, name='vehicletype'), nullable=False),
        sa.Column('vehicle_make', sa.String(100)),
        sa.Column('vehicle_model', sa.String(100)),
        sa.Column('license_plate', sa.String(20)),
        sa.Column('rating', sa.Float(), nullable=False, server_default='0'),
        sa.Column('total_deliveries', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('average_delivery_time', sa.Float(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )
    op.create_index('ix_delivery_agents_status_location', 'delivery_agents', ['status', 'latitude', 'longitude'])
    
    # Create orders table
    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('customer_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('restaurant_id', sa.Uuid(), sa.ForeignKey('restaurants.id'), nullable=False),
        sa.Column('delivery_agent_id', sa.Uuid(), sa.ForeignKey('delivery_agents.id')),
        sa.Column('items_json', sa.JSON(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.Enum(*ORDER_STATUSES, name='orderstatus'), nullable=False),
        sa.Column('payment_status', sa.Enum(*PAYMENT_STATUSES, name='paymentstatus'), nullable=False),
        sa.Column('priority', sa.Enum(*PRIORITIES, name='orderpriority'), nullable=False),
        sa.Column('delivery_street', sa.String(255), nullable=False),
        sa.Column('delivery_city', sa.String(100), nullable=False),
        sa.Column('delivery_state', sa.String(50)),
        sa.Column('delivery_zip_code', sa.String(20)),
        sa.Column('delivery_latitude', sa.Float(), nullable=False),
        sa.Column('delivery_longitude', sa.Float(), nullable=False),
        sa.Column('special_instructions', sa.Text()),
        sa.Column('assigned_at', sa.DateTime()),
        sa.Column('estimated_delivery_time', sa.DateTime()),
        sa.Column('actual_delivery_time', sa.DateTime()),
        sa.Column('preferred_delivery_start', sa.DateTime()),
        sa.Column('preferred_delivery_end', sa.DateTime()),
        sa.Column('delivery_time_flexible', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('route_json', sa.JSON()),
        sa.Column('rating', sa.Integer()),
        sa.Column('feedback', sa.Text()),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )
    op.create_index('ix_orders_customer_id', 'orders', ['customer_id'])
    op.create_index('ix_orders_restaurant_id', 'orders', ['restaurant_id'])
    op.create_index('ix_orders_delivery_agent_id', 'orders', ['delivery_agent_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    
    # Create order_tracking_events table
    op.create_table(
        'order_tracking_events',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('order_id', sa.Uuid(), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('status', postgresql.ENUM(*ORDER_STATUSES, name='orderstatus', create_type=False), nullable=False),
        sa.Column('latitude', sa.Float()),
        sa.Column('longitude', sa.Float()),
        sa.Column('description', sa.Text()),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.UniqueConstraint('order_id', 'position', name='uq_tracking_order_position'),
    )
    
    # Create order_notifications table
    op.create_table(
        'order_notifications',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('order_id', sa.Uuid(), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('type', sa.Enum(*NOTIFICATION_TYPES, name='notificationtype'), nullable=False),
        sa.Column('message', sa.Text()),
        sa.Column('read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.UniqueConstraint('order_id', 'position', name='uq_notification_order_position'),
    )


def downgrade() -> None:
    op.drop_table('order_notifications')
    op.drop_table('order_tracking_events')
    op.drop_table('orders')
    op.drop_table('delivery_agents')
    op.drop_table('menu_items')
    op.drop_table('restaurants')
    op.drop_table('users')
    
    for enum_name in (
        'notificationtype', 'orderpriority', 'paymentstatus', 'orderstatus',
        'vehicletype', 'agentstatus', 'userrole',
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
