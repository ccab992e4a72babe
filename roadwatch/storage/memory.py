"""
In-memory storage used when the database is disabled (USE_DATABASE=false)
and by the test suite.

Transactions are serialized with an asyncio lock and implemented as
snapshot/restore: the state is deep-copied on begin and put back if the unit
of work raises.
"""

import asyncio
import copy
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from roadwatch.models import (
    Citizen,
    Notification,
    PointsTransaction,
    ReportEvent,
    ReportStatus,
    ViolationReport,
    ViolationType,
)
from roadwatch.utils.geo import BoundingBox

from .base import (
    CitizenRepository,
    EventRepository,
    LedgerRepository,
    NotificationRepository,
    ReportRepository,
    Session,
    Storage,
)

logger = logging.getLogger(__name__)


@dataclass
class _MemoryState:
    reports: Dict[int, ViolationReport] = field(default_factory=dict)
    citizens: Dict[str, Citizen] = field(default_factory=dict)
    events: List[ReportEvent] = field(default_factory=list)
    ledger: List[PointsTransaction] = field(default_factory=list)
    notifications: Dict[int, Notification] = field(default_factory=dict)
    next_ids: Dict[str, int] = field(default_factory=dict)

    def next_id(self, table: str) -> int:
        value = self.next_ids.get(table, 0) + 1
        self.next_ids[table] = value
        return value


class MemoryReportRepository(ReportRepository):

    def __init__(self, state: _MemoryState):
        self._state = state

    async def create(self, data: Dict[str, Any]) -> ViolationReport:
        report = ViolationReport(id=self._state.next_id("reports"), **data)
        self._state.reports[report.id] = report
        return report.model_copy(deep=True)

    async def find_by_id(self, report_id: int) -> Optional[ViolationReport]:
        report = self._state.reports.get(report_id)
        return report.model_copy(deep=True) if report else None

    async def update(self, report_id: int, patch: Dict[str, Any]) -> ViolationReport:
        current = self._state.reports[report_id]
        updated = ViolationReport.model_validate({**current.model_dump(), **patch})
        self._state.reports[report_id] = updated
        return updated.model_copy(deep=True)

    async def find_candidates(
        self,
        violation_type: ViolationType,
        window_start: datetime,
        window_end: datetime,
        bbox: BoundingBox,
        exclude_status: Optional[ReportStatus] = None,
        status: Optional[ReportStatus] = None,
        exclude_report_id: Optional[int] = None,
        limit: int = 5,
    ) -> List[ViolationReport]:
        matches = [
            r for r in self._state.reports.values()
            if r.violation_type == violation_type
            and window_start <= r.occurred_at <= window_end
            and bbox.contains(r.latitude, r.longitude)
            and (exclude_status is None or r.status != exclude_status)
            and (status is None or r.status == status)
            and (exclude_report_id is None or r.id != exclude_report_id)
        ]
        matches.sort(key=lambda r: (r.created_at, r.id), reverse=True)
        return [r.model_copy(deep=True) for r in matches[:limit]]

    async def find_group(self, group_id: str) -> List[ViolationReport]:
        members = [
            r for r in self._state.reports.values()
            if r.duplicate_group_id == group_id and r.status != ReportStatus.REJECTED
        ]
        members.sort(key=lambda r: (r.created_at, r.id))
        return [r.model_copy(deep=True) for r in members]

    async def reassign_group(self, old_group_id: str, new_group_id: str) -> int:
        moved = 0
        for report_id, report in list(self._state.reports.items()):
            if report.duplicate_group_id == old_group_id:
                self._state.reports[report_id] = report.model_copy(
                    update={'duplicate_group_id': new_group_id}
                )
                moved += 1
        return moved

    async def list_reports(
        self,
        citizen_id: Optional[str] = None,
        status: Optional[ReportStatus] = None,
        violation_type: Optional[ViolationType] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[ViolationReport]:
        matches = [
            r for r in self._state.reports.values()
            if (citizen_id is None or r.citizen_id == citizen_id)
            and (status is None or r.status == status)
            and (violation_type is None or r.violation_type == violation_type)
        ]
        matches.sort(key=lambda r: (r.created_at, r.id), reverse=True)
        return [r.model_copy(deep=True) for r in matches[offset:offset + limit]]

    async def count_created_since(self, citizen_id: str, since: datetime) -> int:
        return sum(
            1 for r in self._state.reports.values()
            if r.citizen_id == citizen_id and r.created_at >= since
        )


class MemoryCitizenRepository(CitizenRepository):

    def __init__(self, state: _MemoryState):
        self._state = state

    async def find_by_id(self, citizen_id: str) -> Optional[Citizen]:
        citizen = self._state.citizens.get(citizen_id)
        return citizen.model_copy(deep=True) if citizen else None

    async def create(self, citizen: Citizen) -> Citizen:
        self._state.citizens[citizen.id] = citizen.model_copy(deep=True)
        return citizen.model_copy(deep=True)

    async def update(self, citizen_id: str, patch: Dict[str, Any]) -> Citizen:
        current = self._state.citizens[citizen_id]
        updated = Citizen.model_validate({**current.model_dump(), **patch})
        self._state.citizens[citizen_id] = updated
        return updated.model_copy(deep=True)


class MemoryEventRepository(EventRepository):

    def __init__(self, state: _MemoryState):
        self._state = state

    async def append(self, data: Dict[str, Any]) -> ReportEvent:
        event = ReportEvent(id=self._state.next_id("events"), **data)
        self._state.events.append(event)
        return event.model_copy(deep=True)

    async def list_for_report(self, report_id: int) -> List[ReportEvent]:
        events = [e for e in self._state.events if e.report_id == report_id]
        events.sort(key=lambda e: (e.created_at, e.id))
        return [e.model_copy(deep=True) for e in events]


class MemoryLedgerRepository(LedgerRepository):

    def __init__(self, state: _MemoryState):
        self._state = state

    async def append(self, data: Dict[str, Any]) -> PointsTransaction:
        txn = PointsTransaction(id=self._state.next_id("ledger"), **data)
        self._state.ledger.append(txn)
        return txn.model_copy(deep=True)

    async def list_for_citizen(
        self,
        citizen_id: str,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[PointsTransaction]:
        txns = [t for t in self._state.ledger if t.citizen_id == citizen_id]
        txns.sort(key=lambda t: (t.created_at, t.id), reverse=newest_first)
        if limit is not None:
            txns = txns[:limit]
        return [t.model_copy(deep=True) for t in txns]


class MemoryNotificationRepository(NotificationRepository):

    def __init__(self, state: _MemoryState):
        self._state = state

    async def create(self, data: Dict[str, Any]) -> Notification:
        notification = Notification(id=self._state.next_id("notifications"), **data)
        self._state.notifications[notification.id] = notification
        return notification.model_copy(deep=True)

    async def list_for_citizen(self, citizen_id: str, limit: int, offset: int) -> List[Notification]:
        items = [n for n in self._state.notifications.values() if n.citizen_id == citizen_id]
        items.sort(key=lambda n: (n.created_at, n.id), reverse=True)
        return [n.model_copy(deep=True) for n in items[offset:offset + limit]]

    async def delete(self, citizen_id: str, notification_id: int) -> bool:
        notification = self._state.notifications.get(notification_id)
        if notification is None or notification.citizen_id != citizen_id:
            return False
        del self._state.notifications[notification_id]
        return True

    async def delete_all_for_citizen(self, citizen_id: str) -> int:
        ids = [nid for nid, n in self._state.notifications.items() if n.citizen_id == citizen_id]
        for nid in ids:
            del self._state.notifications[nid]
        return len(ids)

    async def purge_expired(self, now: datetime, created_before: datetime) -> int:
        ids = [
            nid for nid, n in self._state.notifications.items()
            if n.expires_at <= now or n.created_at < created_before
        ]
        for nid in ids:
            del self._state.notifications[nid]
        return len(ids)


class MemorySession(Session):

    def __init__(self, state: _MemoryState):
        super().__init__()
        self.reports = MemoryReportRepository(state)
        self.citizens = MemoryCitizenRepository(state)
        self.events = MemoryEventRepository(state)
        self.ledger = MemoryLedgerRepository(state)
        self.notifications = MemoryNotificationRepository(state)


class MemoryStorage(Storage):
    """Process-local storage with snapshot rollback."""

    def __init__(self):
        self._state = _MemoryState()
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def _begin(self) -> AsyncIterator[MemorySession]:
        async with self._lock:
            snapshot = copy.deepcopy(self._state)
            try:
                yield MemorySession(self._state)
            except BaseException:
                self._state = snapshot
                logger.debug("In-memory transaction rolled back")
                raise
