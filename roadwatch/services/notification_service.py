"""
Citizen notifications.

Notifications are created after a report's status changes or points are
awarded. They expire ``ttl_days`` after creation and are hard-deleted when
read. Expired rows are purged lazily whenever a citizen lists their
notifications; there is no background sweeper.
"""

import logging
from datetime import timedelta
from typing import Optional, List

from roadwatch.models import Citizen, Notification, NotificationType, ReportStatus
from roadwatch.storage import Storage
from roadwatch.utils.clock import Clock, utcnow

from .errors import CitizenNotFoundError, NotificationNotFoundError
from .settings import NotificationSettings
from .sms_service import SmsDispatcher

logger = logging.getLogger(__name__)

STATUS_TITLES = {
    ReportStatus.UNDER_REVIEW: "Report Under Review",
    ReportStatus.APPROVED: "Report Approved",
    ReportStatus.REJECTED: "Report Rejected",
    ReportStatus.DUPLICATE: "Report Marked as Duplicate",
}


class NotificationService:
    """In-app notifications plus SMS dispatch for citizens."""

    def __init__(
        self,
        storage: Storage,
        settings: Optional[NotificationSettings] = None,
        sms: Optional[SmsDispatcher] = None,
        clock: Clock = utcnow,
    ):
        self.storage = storage
        self.settings = settings or NotificationSettings()
        self.sms = sms
        self.clock = clock

    def _sms_allowed(self, citizen: Citizen) -> bool:
        return (
            self.sms is not None
            and self.settings.sms_enabled
            and citizen.notification_enabled
            and bool(citizen.phone_ref)
        )

    async def notify_status_update(
        self,
        citizen_id: str,
        report_id: int,
        status: ReportStatus,
    ) -> Optional[Notification]:
        """Create a status notification and send the status SMS.

        Called after the status change has committed.
        """
        now = self.clock()
        status = ReportStatus(status)

        async with self.storage.transaction() as session:
            citizen = await session.citizens.find_by_id(citizen_id)
            if citizen is None:
                logger.warning(f"Skipping status notification: citizen {citizen_id} not found")
                return None

            notification = await session.notifications.create({
                'citizen_id': citizen_id,
                'report_id': report_id,
                'type': NotificationType.REPORT_STATUS,
                'title': STATUS_TITLES.get(status, "Report Status Update"),
                'message': f"Your report #{report_id} has been {status.value.lower().replace('_', ' ')}.",
                'created_at': now,
                'expires_at': now + timedelta(days=self.settings.ttl_days),
            })

        if self._sms_allowed(citizen):
            self.sms.dispatch_status_update(citizen.phone_ref, report_id, status.value)

        return notification

    async def notify_points_awarded(
        self,
        citizen_id: str,
        report_id: int,
        points: int,
        new_total: int,
    ) -> Optional[Notification]:
        """Create a points notification and send the points SMS."""
        now = self.clock()

        async with self.storage.transaction() as session:
            citizen = await session.citizens.find_by_id(citizen_id)
            if citizen is None:
                logger.warning(f"Skipping points notification: citizen {citizen_id} not found")
                return None

            notification = await session.notifications.create({
                'citizen_id': citizen_id,
                'report_id': report_id,
                'type': NotificationType.POINTS,
                'title': "Points Earned",
                'message': f"You earned {points} points for report #{report_id}. Total points: {new_total}.",
                'created_at': now,
                'expires_at': now + timedelta(days=self.settings.ttl_days),
            })

        if self._sms_allowed(citizen):
            self.sms.dispatch_points_update(citizen.phone_ref, points, new_total)

        return notification

    async def list_notifications(
        self,
        citizen_id: str,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Notification]:
        """Newest-first page of a citizen's notifications, after purging expired ones."""
        now = self.clock()
        limit = limit if limit is not None else self.settings.page_size

        async with self.storage.transaction() as session:
            purged = await session.notifications.purge_expired(
                now=now,
                created_before=now - timedelta(days=self.settings.ttl_days),
            )
            if purged:
                logger.info(f"Purged {purged} expired notifications")
            return await session.notifications.list_for_citizen(citizen_id, limit, offset)

    async def mark_read(self, citizen_id: str, notification_id: int) -> None:
        """Reading a notification deletes it."""
        async with self.storage.transaction() as session:
            deleted = await session.notifications.delete(citizen_id, notification_id)
            if not deleted:
                raise NotificationNotFoundError(notification_id)

    async def mark_all_read(self, citizen_id: str) -> int:
        async with self.storage.transaction() as session:
            if await session.citizens.find_by_id(citizen_id) is None:
                raise CitizenNotFoundError(citizen_id)
            return await session.notifications.delete_all_for_citizen(citizen_id)
