"""Order tracking API endpoints"""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch.database import get_db, commit_or_conflict
from dispatch.models.user import User, UserRole
from dispatch.schemas.tracking import (
    LocationReport,
    LocationReportResponse,
    MarkReadRequest,
    MarkReadResponse,
    NotificationsResponse,
    TrackingView,
)
from dispatch.api.auth import get_current_user, require_role
from dispatch.services.notifier import RealtimeNotifier, get_notifier
from dispatch.services.tracking import TrackingService

router = APIRouter()


@router.get("/{order_id}", response_model=TrackingView, response_model_exclude_unset=True)
async def track_order(
    order_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
):
    """Role-filtered tracking view; may assign a courier to a pending order"""
    service = TrackingService(db, notifier)
    view = await service.get_tracking_view(order_id, current_user.role, current_user.id)
    await commit_or_conflict(db)
    await service.publish_events()

    return view


@router.post("/{order_id}/location", response_model=LocationReportResponse)
async def update_location(
    order_id: UUID,
    report: LocationReport,
    current_user: User = Depends(require_role(UserRole.DELIVERY)),
    db: AsyncSession = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
):
    """Courier position report for an order in progress"""
    service = TrackingService(db, notifier)
    route = await service.report_location(
        order_id, current_user.id, (report.longitude, report.latitude)
    )
    await commit_or_conflict(db)
    await service.publish_events()

    return LocationReportResponse(message="Location updated successfully", route=route)


@router.get("/{order_id}/notifications", response_model=NotificationsResponse)
async def get_notifications(
    order_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """All notifications of an order with the unread count"""
    service = TrackingService(db)
    return await service.get_notifications(order_id, current_user.role, current_user.id)


@router.post("/{order_id}/notifications/read", response_model=MarkReadResponse)
async def mark_notifications_read(
    order_id: UUID,
    request: MarkReadRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Mark notifications read; unknown ids are ignored"""
    service = TrackingService(db)
    updated = await service.mark_notifications_read(
        order_id, current_user.role, current_user.id, request.notification_ids
    )
    await commit_or_conflict(db)

    return MarkReadResponse(message="Notifications marked as read", updated=updated)
