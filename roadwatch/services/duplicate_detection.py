"""Duplicate detection for citizen violation reports.

A new submission is compared against existing reports in two stages:

1. **Candidate finding** -- a cheap, index-friendly prefilter: same violation
   type, incident time within +/- ``time_window_minutes`` and coordinates
   inside a +/- ``bbox_delta_deg`` bounding box. Rejected reports are
   excluded because they cannot anchor a duplicate group. Results are
   newest-first and capped at ``candidate_limit``.
2. **Confidence scoring** -- a precise comparison of the new report against
   the single most recent candidate:

   - location (max 50): great-circle distance < 50m -> 50, < 100m -> 25
   - time (max 30): delta < 5 min -> 30, < 15 min -> 15
   - vehicle (max 20): both carry a vehicle number and they match
     case-insensitively -> 20

   The sum is divided by 100. A score strictly above
   ``confidence_threshold`` marks the report as a duplicate.

Output contract:
    - ``DuplicateDetector.process_report()`` returns a ``DuplicateDecision``.
      The decision is made once at submission and stored on the report; it is
      never re-evaluated when thresholds change.
    - Group identity is the id of the canonical (group-founding) report, as a
      string. It is resolved by following ``duplicate_group_id`` links from
      the matched candidate, so every member of a group converges on the same
      id regardless of which member happened to be matched.

Known limitations:
    - Only the most recent candidate is scored; ties are broken by recency,
      not by re-scoring every candidate.
    - Without a vehicle number the maximum score is 0.8, which is still above
      the default threshold, so location + time alone can mark a duplicate.
    - Two near-simultaneous submissions about the same incident may not see
      each other and both end up non-duplicate (no locking).
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any, Tuple, Union

from roadwatch.models import ReportCreate, ReportStatus, ViolationReport, ViolationType
from roadwatch.utils.geo import bounding_box, distance_meters, time_delta_ms

from .settings import DuplicateDetectionSettings

logger = logging.getLogger(__name__)

ReportLike = Union[ReportCreate, ViolationReport]


@dataclass
class DuplicateDecision:
    """Outcome of duplicate detection for one submission."""
    is_duplicate: bool
    duplicate_group_id: Optional[str] = None
    confidence_score: Optional[float] = None
    matched_report_id: Optional[int] = None
    reasons: List[str] = field(default_factory=list)

    def as_metadata(self) -> Dict[str, Any]:
        return {
            'is_duplicate': self.is_duplicate,
            'duplicate_group_id': self.duplicate_group_id,
            'confidence_score': self.confidence_score,
            'matched_report_id': self.matched_report_id,
        }


def normalize_vehicle_number(value: Optional[str]) -> str:
    """Normalize a vehicle number for comparison."""
    if not value:
        return ""
    return value.strip().upper()


def calculate_confidence_score(
    new_report: ReportLike,
    candidate: ReportLike,
    settings: Optional[DuplicateDetectionSettings] = None,
) -> Tuple[float, List[str]]:
    """
    Score how likely two reports describe the same incident.
    Returns (score 0-1, list of reasons). Symmetric in its inputs.
    """
    settings = settings or DuplicateDetectionSettings()
    points = 0
    reasons = []

    # Location
    distance = distance_meters(
        new_report.latitude, new_report.longitude,
        candidate.latitude, candidate.longitude,
    )
    if distance < settings.location_near_meters:
        points += settings.location_near_points
        reasons.append(f"Within {distance:.0f}m")
    elif distance < settings.location_far_meters:
        points += settings.location_far_points
        reasons.append(f"Within {distance:.0f}m (far tier)")

    # Time
    delta_ms = time_delta_ms(new_report.occurred_at, candidate.occurred_at)
    if delta_ms < settings.time_near_minutes * 60 * 1000:
        points += settings.time_near_points
        reasons.append(f"{delta_ms / 60000:.1f} min apart")
    elif delta_ms < settings.time_far_minutes * 60 * 1000:
        points += settings.time_far_points
        reasons.append(f"{delta_ms / 60000:.1f} min apart (far tier)")

    # Vehicle identity
    new_vehicle = normalize_vehicle_number(new_report.vehicle_number)
    candidate_vehicle = normalize_vehicle_number(candidate.vehicle_number)
    if new_vehicle and candidate_vehicle and new_vehicle == candidate_vehicle:
        points += settings.vehicle_match_points
        reasons.append(f"Same vehicle: {new_vehicle}")

    return points / 100, reasons


class CandidateFinder:
    """Bounding-box and time-window prefilter over stored reports."""

    def __init__(self, settings: Optional[DuplicateDetectionSettings] = None):
        self.settings = settings or DuplicateDetectionSettings()

    async def find_candidates(
        self,
        session,
        violation_type: ViolationType,
        occurred_at: datetime,
        latitude: float,
        longitude: float,
        status: Optional[ReportStatus] = None,
        exclude_status: Optional[ReportStatus] = ReportStatus.REJECTED,
        exclude_report_id: Optional[int] = None,
        window_minutes: Optional[int] = None,
        bbox_delta_deg: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> List[ViolationReport]:
        """Existing reports near a point in space and time, newest first.

        An empty list means no match; it is not an error.
        """
        window = timedelta(minutes=window_minutes if window_minutes is not None
                           else self.settings.time_window_minutes)
        box = bounding_box(
            latitude, longitude,
            bbox_delta_deg if bbox_delta_deg is not None else self.settings.bbox_delta_deg,
        )
        return await session.reports.find_candidates(
            violation_type=violation_type,
            window_start=occurred_at - window,
            window_end=occurred_at + window,
            bbox=box,
            exclude_status=exclude_status,
            status=status,
            exclude_report_id=exclude_report_id,
            limit=limit if limit is not None else self.settings.candidate_limit,
        )


class DuplicateDetector:
    """Decides at submission time whether a report duplicates an existing one."""

    def __init__(
        self,
        settings: Optional[DuplicateDetectionSettings] = None,
        finder: Optional[CandidateFinder] = None,
    ):
        self.settings = settings or DuplicateDetectionSettings()
        self.finder = finder or CandidateFinder(self.settings)

    async def process_report(self, session, report: ReportCreate) -> DuplicateDecision:
        """Run the finder, score the most recent candidate and decide.

        When the matched candidate does not belong to a group yet it becomes
        the canonical member and is stamped with its own id, in the caller's
        transaction.
        """
        candidates = await self.finder.find_candidates(
            session,
            violation_type=report.violation_type,
            occurred_at=report.occurred_at,
            latitude=report.latitude,
            longitude=report.longitude,
        )
        if not candidates:
            return DuplicateDecision(is_duplicate=False)

        candidate = candidates[0]
        score, reasons = calculate_confidence_score(report, candidate, self.settings)
        logger.debug(
            "Scored candidate %s: %.2f (%s)", candidate.id, score, ", ".join(reasons) or "no match"
        )

        if score <= self.settings.confidence_threshold:
            return DuplicateDecision(is_duplicate=False, reasons=reasons)

        group_id = await self.resolve_group_id(session, candidate, claim=True)
        logger.info(
            "Report matches %s with confidence %.2f, group %s",
            candidate.id, score, group_id,
        )
        return DuplicateDecision(
            is_duplicate=True,
            duplicate_group_id=group_id,
            confidence_score=score,
            matched_report_id=candidate.id,
            reasons=reasons,
        )

    async def resolve_group_id(self, session, report: ViolationReport, claim: bool = False) -> str:
        """Follow group links from ``report`` to the canonical member's id.

        With ``claim=True`` an ungrouped canonical report is stamped with its
        own id so the new member shares a group id with it.
        """
        current = report
        visited = {current.id}

        while current.duplicate_group_id and current.duplicate_group_id != str(current.id):
            try:
                parent_id = int(current.duplicate_group_id)
            except ValueError:
                # Group label that is not a report id; keep it as-is
                return current.duplicate_group_id
            parent = await session.reports.find_by_id(parent_id)
            if parent is None or parent.id in visited:
                return current.duplicate_group_id
            visited.add(parent.id)
            current = parent

        group_id = str(current.id)
        if claim and current.duplicate_group_id is None:
            await session.reports.update(current.id, {'duplicate_group_id': group_id})
        return group_id

    async def get_duplicate_group(self, session, group_id: str) -> List[ViolationReport]:
        """Non-rejected members of a group, canonical (oldest) first."""
        return await session.reports.find_group(group_id)

    def get_config(self) -> dict:
        """Get current configuration as dict."""
        return {
            'time_window_minutes': self.settings.time_window_minutes,
            'bbox_delta_deg': self.settings.bbox_delta_deg,
            'candidate_limit': self.settings.candidate_limit,
            'confidence_threshold': self.settings.confidence_threshold,
            'weights': {
                'location': self.settings.location_near_points,
                'time': self.settings.time_near_points,
                'vehicle': self.settings.vehicle_match_points,
            },
        }


# Singleton instance
_detector: Optional[DuplicateDetector] = None


def get_detector() -> DuplicateDetector:
    """Get the singleton DuplicateDetector built from environment settings."""
    global _detector
    if _detector is None:
        from .settings import get_settings
        _detector = DuplicateDetector(get_settings().duplicates)
    return _detector
