"""Background job tasks"""

from datetime import datetime, timedelta
from typing import Tuple
from uuid import UUID
import asyncio
import structlog

from dispatch.jobs.celery_app import celery_app
from dispatch.config import settings

logger = structlog.get_logger()


def run_async(coro):
    """Helper to run async functions in sync context"""
    return asyncio.run(coro)


@celery_app.task(name="send_order_sms")
def send_order_sms(order_id: str, message: str):
    """Text an order update to the customer"""
    logger.info("Sending order SMS", order_id=order_id)
    
    if not settings.twilio_account_sid or not settings.twilio_auth_token:
        logger.warning("Twilio not configured, skipping SMS", order_id=order_id)
        return
    
    async def _send():
        from dispatch.database import SessionLocal
        from dispatch.models.order import Order
        from dispatch.models.user import User
        from twilio.rest import Client as TwilioClient
        from sqlalchemy import select
        
        async with SessionLocal() as db:
            result = await db.execute(
                select(User.phone)
                .join(Order, Order.customer_id == User.id)
                .where(Order.id == UUID(order_id))
            )
            phone = result.scalar_one_or_none()
            
            if not phone:
                logger.warning("No customer phone for order", order_id=order_id)
                return
            
            client = TwilioClient(settings.twilio_account_sid, settings.twilio_auth_token)
            client.messages.create(
                body=message,
                from_=settings.twilio_phone_number,
                to=phone,
            )
            logger.info("Order SMS sent", order_id=order_id)
    
    run_async(_send())


async def assign_waiting_orders(db, notifier, cutoff: datetime) -> Tuple[int, int]:
    """
    Try to assign couriers to pending orders created before cutoff.

    Each order commits on its own so one failure does not undo the rest.
    Returns (orders checked, orders assigned by this run).
    """
    from dispatch.database import commit_or_conflict
    from dispatch.exceptions import DispatchError
    from dispatch.models.order import Order, OrderStatus
    from dispatch.services.orders import OrderLedger
    from sqlalchemy import select

    result = await db.execute(
        select(Order.id).where(
            Order.status == OrderStatus.PENDING,
            Order.delivery_agent_id.is_(None),
            Order.created_at <= cutoff,
        ).order_by(Order.created_at)
    )
    order_ids = result.scalars().all()
    assigned = 0

    for order_id in order_ids:
        ledger = OrderLedger(db, notifier)
        try:
            agent = await ledger.assign_if_waiting(order_id)
            await commit_or_conflict(db)
        except DispatchError as e:
            await db.rollback()
            logger.warning(
                "Assignment retry failed",
                order_id=str(order_id),
                error=e.message,
            )
            continue

        await ledger.publish_events()
        if agent:
            assigned += 1

    return len(order_ids), assigned


@celery_app.task(name="retry_agent_assignment")
def retry_agent_assignment():
    """Look again for couriers for pending orders that have none"""
    logger.info("Retrying agent assignment")
    
    async def _retry():
        from dispatch.database import SessionLocal
        from dispatch.services.notifier import RealtimeNotifier
        
        # Give the read path a chance first
        cutoff = datetime.utcnow() - timedelta(seconds=settings.assignment_retry_interval_seconds)
        notifier = RealtimeNotifier(settings.redis_url)
        
        try:
            async with SessionLocal() as db:
                checked, assigned = await assign_waiting_orders(db, notifier, cutoff)
        finally:
            await notifier.close()
        
        logger.info("Agent assignment retry finished", checked=checked, assigned=assigned)
    
    run_async(_retry())
