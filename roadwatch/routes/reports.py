"""
Citizen-facing report routes: registration, submission, report history and
lookup, event timeline and duplicate groups.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from roadwatch.models import Citizen, CitizenCreate, ReportCreate, ReportStatus
from roadwatch.routes._shared import (
    get_citizen_service,
    get_event_service,
    get_lifecycle_service,
)
from roadwatch.services import CitizenService, ReportEventService, ReportLifecycleService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Reports"])


# =====================
# Citizens
# =====================

@router.post("/api/citizens", status_code=201, response_model=Citizen)
async def register_citizen(
    payload: CitizenCreate,
    service: CitizenService = Depends(get_citizen_service),
):
    """Register a citizen (returns the existing record for a known id)."""
    return await service.register_citizen(payload)


@router.get("/api/citizens/{citizen_id}", response_model=Citizen)
async def get_citizen(
    citizen_id: str,
    service: CitizenService = Depends(get_citizen_service),
):
    return await service.get_citizen(citizen_id)


# =====================
# Reports
# =====================

@router.post("/api/citizens/{citizen_id}/reports", status_code=201)
async def submit_report(
    citizen_id: str,
    payload: ReportCreate,
    service: ReportLifecycleService = Depends(get_lifecycle_service),
):
    """Submit a violation report. Duplicate detection runs on submission."""
    report = await service.submit_report(citizen_id, payload)
    return {
        "report": report,
        "is_duplicate": report.is_duplicate,
        "duplicate_group_id": report.duplicate_group_id,
        "message": (
            "Report submitted. A similar report already exists for this incident."
            if report.is_duplicate
            else "Report submitted successfully."
        ),
    }


@router.get("/api/citizens/{citizen_id}/reports")
async def list_citizen_reports(
    citizen_id: str,
    status: Optional[ReportStatus] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service: ReportLifecycleService = Depends(get_lifecycle_service),
):
    """The citizen's own reports, newest first."""
    reports = await service.list_reports(
        citizen_id=citizen_id, status=status, limit=limit, offset=offset
    )
    return {"reports": reports, "count": len(reports), "limit": limit, "offset": offset}


@router.get("/api/reports/{report_id}")
async def get_report(
    report_id: int,
    service: ReportLifecycleService = Depends(get_lifecycle_service),
):
    return await service.get_report(report_id)


@router.get("/api/reports/{report_id}/events")
async def get_report_events(
    report_id: int,
    lifecycle: ReportLifecycleService = Depends(get_lifecycle_service),
    events: ReportEventService = Depends(get_event_service),
):
    """Timeline of a report in creation order."""
    await lifecycle.get_report(report_id)
    return {"report_id": report_id, "events": await events.list_events(report_id)}


@router.get("/api/duplicate-groups/{group_id}")
async def get_duplicate_group(
    group_id: str,
    service: ReportLifecycleService = Depends(get_lifecycle_service),
):
    """Non-rejected members of a duplicate group, oldest first."""
    members = await service.get_duplicate_group(group_id)
    return {"group_id": group_id, "count": len(members), "reports": members}
