"""
Report event trail.

Every step in a report's life (submission, status changes, points) is
appended as an immutable ``ReportEvent``. Events are the audit record; the
order they were appended in is the order they are listed in.

Logging a ``STATUS_UPDATED`` event for a citizen also schedules the citizen
notification. The notification runs after the surrounding transaction
commits and is best-effort: if it fails, the event and the status change
stay committed.
"""

import logging
from typing import Optional, Dict, Any, List

from roadwatch.models import ReportEvent, ReportEventType, ReportStatus
from roadwatch.storage import Session, Storage
from roadwatch.utils.clock import Clock, utcnow

from .notification_service import NotificationService

logger = logging.getLogger(__name__)


class ReportEventService:
    """Appends and lists report events."""

    def __init__(
        self,
        storage: Storage,
        notifications: Optional[NotificationService] = None,
        clock: Clock = utcnow,
    ):
        self.storage = storage
        self.notifications = notifications
        self.clock = clock

    async def log_event(
        self,
        report_id: int,
        event_type: ReportEventType,
        title: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        citizen_id: Optional[str] = None,
        user_id: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> ReportEvent:
        """
        Append one event.

        With ``session`` the event joins the caller's transaction; without it
        the event is written in its own transaction.
        """
        if session is None:
            async with self.storage.transaction() as own_session:
                return await self._append(
                    own_session, report_id, event_type, title, description,
                    metadata, citizen_id, user_id,
                )
        return await self._append(
            session, report_id, event_type, title, description,
            metadata, citizen_id, user_id,
        )

    async def _append(
        self,
        session: Session,
        report_id: int,
        event_type: ReportEventType,
        title: Optional[str],
        description: Optional[str],
        metadata: Optional[Dict[str, Any]],
        citizen_id: Optional[str],
        user_id: Optional[str],
    ) -> ReportEvent:
        metadata = dict(metadata or {})
        event = await session.events.append({
            'report_id': report_id,
            'type': event_type,
            'title': title,
            'description': description,
            'metadata': metadata,
            'citizen_id': citizen_id,
            'user_id': user_id,
            'created_at': self.clock(),
        })
        logger.debug(f"Logged {event_type.value} for report {report_id}")

        if (
            event_type == ReportEventType.STATUS_UPDATED
            and citizen_id
            and self.notifications is not None
            and metadata.get('new_status')
        ):
            self._schedule_status_notification(
                session, citizen_id, report_id, ReportStatus(metadata['new_status'])
            )

        return event

    def _schedule_status_notification(
        self,
        session: Session,
        citizen_id: str,
        report_id: int,
        status: ReportStatus,
    ) -> None:
        notifications = self.notifications

        async def notify_status_update() -> None:
            await notifications.notify_status_update(citizen_id, report_id, status)

        session.after_commit(notify_status_update)

    async def list_events(self, report_id: int) -> List[ReportEvent]:
        """Events for a report in creation order."""
        async with self.storage.transaction() as session:
            return await session.events.list_for_report(report_id)
