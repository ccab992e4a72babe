"""
Report lifecycle: submission, police review and points.

Status transitions follow an explicit table:

    PENDING       -> UNDER_REVIEW, APPROVED, REJECTED, DUPLICATE
    UNDER_REVIEW  -> APPROVED, REJECTED, DUPLICATE
    REJECTED      -> DUPLICATE
    APPROVED      (terminal)
    DUPLICATE     (terminal)

Anything else raises ``InvalidTransitionError`` and changes nothing. In
particular a report can be approved at most once, so points are awarded at
most once per report.

Each submission and each status change is a single transaction covering the
report, the citizen counters, the points ledger and the event trail.
Notifications and SMS run after the commit and never undo it.
"""

import logging
from typing import Optional, Dict, Any, List, Tuple

from roadwatch.models import (
    Citizen,
    ReportCreate,
    ReportEventType,
    ReportStatus,
    REVIEWED_STATUSES,
    StatusUpdate,
    TransactionType,
    ViolationReport,
    ViolationType,
    accuracy_rate,
)
from roadwatch.storage import Session, Storage
from roadwatch.utils.clock import Clock, start_of_utc_day, utcnow

from .duplicate_detection import DuplicateDetector
from .errors import (
    CitizenNotFoundError,
    DailyLimitExceededError,
    InvalidTransitionError,
    ReportNotFoundError,
    ReportingError,
)
from .event_service import ReportEventService
from .notification_service import NotificationService
from .settings import ReportingSettings

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[ReportStatus, frozenset] = {
    ReportStatus.PENDING: frozenset({
        ReportStatus.UNDER_REVIEW,
        ReportStatus.APPROVED,
        ReportStatus.REJECTED,
        ReportStatus.DUPLICATE,
    }),
    ReportStatus.UNDER_REVIEW: frozenset({
        ReportStatus.APPROVED,
        ReportStatus.REJECTED,
        ReportStatus.DUPLICATE,
    }),
    ReportStatus.REJECTED: frozenset({ReportStatus.DUPLICATE}),
    ReportStatus.APPROVED: frozenset(),
    ReportStatus.DUPLICATE: frozenset(),
}


def can_transition(current: ReportStatus, target: ReportStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


class ReportLifecycleService:
    """Submits reports and applies police review decisions."""

    def __init__(
        self,
        storage: Storage,
        settings: Optional[ReportingSettings] = None,
        detector: Optional[DuplicateDetector] = None,
        events: Optional[ReportEventService] = None,
        notifications: Optional[NotificationService] = None,
        clock: Clock = utcnow,
    ):
        self.storage = storage
        self.settings = settings or ReportingSettings()
        self.detector = detector or DuplicateDetector(self.settings.duplicates)
        self.notifications = notifications
        self.events = events or ReportEventService(storage, notifications, clock=clock)
        self.clock = clock

    # =====================
    # Reads
    # =====================

    async def get_report(self, report_id: int) -> ViolationReport:
        async with self.storage.transaction() as session:
            report = await session.reports.find_by_id(report_id)
        if report is None:
            raise ReportNotFoundError(report_id)
        return report

    async def list_reports(
        self,
        citizen_id: Optional[str] = None,
        status: Optional[ReportStatus] = None,
        violation_type: Optional[ViolationType] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[ViolationReport]:
        """
        Page of reports, newest first.

        With ``citizen_id`` this is the citizen's own history (404 for an
        unknown citizen); without it, the police review queue.
        """
        async with self.storage.transaction() as session:
            if citizen_id is not None and await session.citizens.find_by_id(citizen_id) is None:
                raise CitizenNotFoundError(citizen_id)
            return await session.reports.list_reports(
                citizen_id=citizen_id,
                status=status,
                violation_type=violation_type,
                limit=limit,
                offset=offset,
            )

    async def get_duplicate_group(self, group_id: str) -> List[ViolationReport]:
        async with self.storage.transaction() as session:
            return await self.detector.get_duplicate_group(session, group_id)

    # =====================
    # Submission
    # =====================

    async def submit_report(self, citizen_id: str, payload: ReportCreate) -> ViolationReport:
        """
        Create a PENDING report for a citizen.

        Runs duplicate detection, stores the decision on the report, logs
        REPORT_SUBMITTED and bumps the citizen's submission counter.
        """
        now = self.clock()

        async with self.storage.transaction() as session:
            citizen = await session.citizens.find_by_id(citizen_id)
            if citizen is None:
                raise CitizenNotFoundError(citizen_id)

            limit = self.settings.submission.max_reports_per_day
            submitted_today = await session.reports.count_created_since(
                citizen_id, start_of_utc_day(now)
            )
            if submitted_today >= limit:
                raise DailyLimitExceededError(citizen_id, limit)

            decision = await self.detector.process_report(session, payload)

            data = payload.model_dump()
            data.update({
                'citizen_id': citizen_id,
                'violation_type': payload.violation_type,
                'violation_types': list(dict.fromkeys(payload.violation_types)),
                'status': ReportStatus.PENDING,
                'is_duplicate': decision.is_duplicate,
                'duplicate_group_id': decision.duplicate_group_id,
                'confidence_score': decision.confidence_score,
                'created_at': now,
                'updated_at': now,
            })
            report = await session.reports.create(data)

            await self.events.log_event(
                report.id,
                ReportEventType.REPORT_SUBMITTED,
                title="Report Submitted",
                description="Traffic violation report submitted successfully",
                metadata=decision.as_metadata(),
                citizen_id=citizen_id,
                session=session,
            )

            submitted = citizen.reports_submitted + 1
            await session.citizens.update(citizen_id, {
                'reports_submitted': submitted,
                'accuracy_rate': accuracy_rate(citizen.reports_approved, submitted),
                'updated_at': now,
            })

        if report.is_duplicate:
            logger.info(
                f"Report {report.id} submitted by {citizen_id} as duplicate "
                f"(group {report.duplicate_group_id}, confidence {report.confidence_score:.2f})"
            )
        else:
            logger.info(f"Report {report.id} submitted by {citizen_id}")
        return report

    # =====================
    # Review
    # =====================

    async def update_status(
        self,
        report_id: int,
        update: StatusUpdate,
        reviewer_id: str,
    ) -> ViolationReport:
        """
        Apply a review decision to a report.

        Approval awards points (with the first-reporter bonus when no other
        approved report covers the same incident), updates the citizen and
        appends an EARN ledger entry. Raises ``InvalidTransitionError`` for
        transitions outside the table.
        """
        now = self.clock()
        target = update.status

        async with self.storage.transaction() as session:
            report = await session.reports.find_by_id(report_id)
            if report is None:
                raise ReportNotFoundError(report_id)

            previous = report.status
            if not can_transition(previous, target):
                raise InvalidTransitionError(report_id, previous.value, target.value)

            citizen = await session.citizens.find_by_id(report.citizen_id)
            if citizen is None:
                raise CitizenNotFoundError(report.citizen_id)

            patch: Dict[str, Any] = {
                'status': target,
                'reviewer_id': reviewer_id,
                'updated_at': now,
            }
            if update.review_notes is not None:
                patch['review_notes'] = update.review_notes
            if target in REVIEWED_STATUSES:
                patch['review_timestamp'] = now
            if update.challan_issued is not None:
                patch['challan_issued'] = update.challan_issued
            if update.challan_number is not None:
                patch['challan_number'] = update.challan_number

            points = 0
            bonus = 0
            if target == ReportStatus.APPROVED:
                base, bonus = await self._calculate_points(session, report)
                points = base + bonus
                patch['points_awarded'] = points
                patch['is_first_reporter'] = bonus > 0
            elif target == ReportStatus.DUPLICATE:
                patch.update(await self._duplicate_patch(session, report, update.duplicate_of))

            updated = await session.reports.update(report_id, patch)

            new_total = citizen.total_points
            if target == ReportStatus.APPROVED:
                new_total = await self._credit_citizen(session, citizen, updated, points, now)
            elif target == ReportStatus.REJECTED:
                await session.citizens.update(citizen.id, {
                    'accuracy_rate': accuracy_rate(citizen.reports_approved, citizen.reports_submitted),
                    'updated_at': now,
                })

            await self.events.log_event(
                report_id,
                ReportEventType.STATUS_UPDATED,
                title=f"Report {target.value.replace('_', ' ').title()}",
                description=update.review_notes,
                metadata={
                    'old_status': previous.value,
                    'new_status': target.value,
                    'reviewer_id': reviewer_id,
                },
                citizen_id=citizen.id,
                user_id=reviewer_id,
                session=session,
            )

            if target == ReportStatus.APPROVED:
                await self.events.log_event(
                    report_id,
                    ReportEventType.POINTS_AWARDED,
                    title="Points Awarded",
                    description=f"You earned {points} points for this report",
                    metadata={
                        'points': points,
                        'first_reporter_bonus': bonus,
                        'is_first_reporter': bonus > 0,
                        'total_points': new_total,
                    },
                    citizen_id=citizen.id,
                    user_id=reviewer_id,
                    session=session,
                )
                self._schedule_points_notification(session, citizen.id, report_id, points, new_total)

        logger.info(
            f"Report {report_id} {previous.value} -> {target.value} by {reviewer_id}"
            + (f", {points} points awarded" if points else "")
        )
        return updated

    async def _calculate_points(self, session: Session, report: ViolationReport) -> Tuple[int, int]:
        """Base points and first-reporter bonus for approving ``report``."""
        settings = self.settings.points
        base = settings.points_per_approval
        if settings.scale_points_by_violation_count:
            base *= max(1, len(set(report.violation_types)))

        earlier_approved = await self.detector.finder.find_candidates(
            session,
            violation_type=report.violation_type,
            occurred_at=report.occurred_at,
            latitude=report.latitude,
            longitude=report.longitude,
            status=ReportStatus.APPROVED,
            exclude_status=None,
            exclude_report_id=report.id,
            window_minutes=settings.first_reporter_window_minutes,
            bbox_delta_deg=settings.first_reporter_bbox_delta_deg,
            limit=1,
        )
        bonus = 0 if earlier_approved else settings.first_reporter_bonus
        return base, bonus

    async def _duplicate_patch(
        self,
        session: Session,
        report: ViolationReport,
        duplicate_of: Optional[int],
    ) -> Dict[str, Any]:
        """Group fields for a manual DUPLICATE decision."""
        if duplicate_of is None:
            if report.duplicate_group_id:
                return {'is_duplicate': True}
            return {}

        if duplicate_of == report.id:
            raise ReportingError(f"Report {report.id} cannot duplicate itself")
        original = await session.reports.find_by_id(duplicate_of)
        if original is None:
            raise ReportNotFoundError(duplicate_of)

        group_id = await self.detector.resolve_group_id(session, original, claim=True)
        old_group_id = str(report.id)
        if report.duplicate_group_id == old_group_id and group_id != old_group_id:
            # The report anchors a group: its members follow it into the new one
            moved = await session.reports.reassign_group(old_group_id, group_id)
            logger.info(f"Moved {moved} reports from group {old_group_id} to {group_id}")
        return {'is_duplicate': True, 'duplicate_group_id': group_id}

    async def _credit_citizen(
        self,
        session: Session,
        citizen: Citizen,
        report: ViolationReport,
        points: int,
        now,
    ) -> int:
        """Apply an approval to the citizen's counters and the ledger. Returns the new balance."""
        approved = citizen.reports_approved + 1
        new_total = citizen.total_points + points

        await session.citizens.update(citizen.id, {
            'reports_approved': approved,
            'points_earned': citizen.points_earned + points,
            'total_points': new_total,
            'accuracy_rate': accuracy_rate(approved, citizen.reports_submitted),
            'updated_at': now,
        })
        await session.ledger.append({
            'citizen_id': citizen.id,
            'type': TransactionType.EARN,
            'points': points,
            'balance_after': new_total,
            'report_id': report.id,
            'description': f"Points for approved report #{report.id}",
            'created_at': now,
        })
        return new_total

    def _schedule_points_notification(
        self,
        session: Session,
        citizen_id: str,
        report_id: int,
        points: int,
        new_total: int,
    ) -> None:
        if self.notifications is None:
            return
        notifications = self.notifications

        async def notify_points_awarded() -> None:
            await notifications.notify_points_awarded(citizen_id, report_id, points, new_total)

        session.after_commit(notify_points_awarded)
