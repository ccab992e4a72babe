"""
Police review routes: the review queue and status decisions.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query

from roadwatch.models import ReportStatus, StatusUpdate, ViolationType
from roadwatch.routes._shared import get_lifecycle_service
from roadwatch.services import ReportLifecycleService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Police"])


@router.get("/api/police/reports")
async def list_reports(
    status: Optional[ReportStatus] = None,
    violation_type: Optional[ViolationType] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service: ReportLifecycleService = Depends(get_lifecycle_service),
):
    """Review queue, newest first. Filter by status to find PENDING work."""
    reports = await service.list_reports(
        status=status, violation_type=violation_type, limit=limit, offset=offset
    )
    return {"reports": reports, "count": len(reports), "limit": limit, "offset": offset}


@router.patch("/api/police/reports/{report_id}/status")
async def update_report_status(
    report_id: int,
    update: StatusUpdate,
    reviewer_id: str = Header(..., alias="X-Reviewer-Id"),
    service: ReportLifecycleService = Depends(get_lifecycle_service),
):
    """
    Apply a review decision.

    Returns 409 when the transition is not allowed from the current status.
    """
    report = await service.update_status(report_id, update, reviewer_id)
    return {"success": True, "report": report}
