"""
Citizen notification routes.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from roadwatch.routes._shared import get_notification_service
from roadwatch.services import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Notifications"])


@router.get("/api/citizens/{citizen_id}/notifications")
async def list_notifications(
    citizen_id: str,
    limit: Optional[int] = Query(None, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service: NotificationService = Depends(get_notification_service),
):
    notifications = await service.list_notifications(citizen_id, limit=limit, offset=offset)
    return {"notifications": notifications, "count": len(notifications)}


@router.post("/api/citizens/{citizen_id}/notifications/read-all")
async def mark_all_read(
    citizen_id: str,
    service: NotificationService = Depends(get_notification_service),
):
    deleted = await service.mark_all_read(citizen_id)
    return {"success": True, "deleted": deleted}


@router.post("/api/citizens/{citizen_id}/notifications/{notification_id}/read")
async def mark_read(
    citizen_id: str,
    notification_id: int,
    service: NotificationService = Depends(get_notification_service),
):
    await service.mark_read(citizen_id, notification_id)
    return {"success": True}
