"""
Storage collaborators for the reporting core.

A ``Storage`` hands out ``Session`` objects through ``transaction()``. All
reads and writes of one logical unit of work (a submission, a status update,
a redemption) go through one session and commit together.

Sessions also collect post-commit hooks. Hooks run only after a successful
commit, each behind its own error boundary: a failing hook is logged and
never propagates back to the caller or undoes the committed work.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from typing import (
    Any, AsyncContextManager, AsyncIterator, Awaitable, Callable, Dict, List, Optional,
)

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

logger = logging.getLogger(__name__)

PostCommitHook = Callable[[], Awaitable[None]]


class ReportRepository(ABC):

    @abstractmethod
    async def create(self, data: Dict[str, Any]) -> ViolationReport:
        """Insert a report; the store assigns ``id``."""

    @abstractmethod
    async def find_by_id(self, report_id: int) -> Optional[ViolationReport]:
        ...

    @abstractmethod
    async def update(self, report_id: int, patch: Dict[str, Any]) -> ViolationReport:
        ...

    @abstractmethod
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
        """Reports inside the window and box, newest-first by creation time."""

    @abstractmethod
    async def find_group(self, group_id: str) -> List[ViolationReport]:
        """Non-rejected members of a duplicate group, oldest first."""

    @abstractmethod
    async def reassign_group(self, old_group_id: str, new_group_id: str) -> int:
        """Move every report carrying ``old_group_id`` to ``new_group_id``."""

    @abstractmethod
    async def list_reports(
        self,
        citizen_id: Optional[str] = None,
        status: Optional[ReportStatus] = None,
        violation_type: Optional[ViolationType] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[ViolationReport]:
        """Filtered page of reports, newest first by creation time."""

    @abstractmethod
    async def count_created_since(self, citizen_id: str, since: datetime) -> int:
        ...


class CitizenRepository(ABC):

    @abstractmethod
    async def find_by_id(self, citizen_id: str) -> Optional[Citizen]:
        ...

    @abstractmethod
    async def create(self, citizen: Citizen) -> Citizen:
        ...

    @abstractmethod
    async def update(self, citizen_id: str, patch: Dict[str, Any]) -> Citizen:
        ...


class EventRepository(ABC):

    @abstractmethod
    async def append(self, data: Dict[str, Any]) -> ReportEvent:
        ...

    @abstractmethod
    async def list_for_report(self, report_id: int) -> List[ReportEvent]:
        """Events in creation order."""


class LedgerRepository(ABC):

    @abstractmethod
    async def append(self, data: Dict[str, Any]) -> PointsTransaction:
        ...

    @abstractmethod
    async def list_for_citizen(
        self,
        citizen_id: str,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[PointsTransaction]:
        ...


class NotificationRepository(ABC):

    @abstractmethod
    async def create(self, data: Dict[str, Any]) -> Notification:
        ...

    @abstractmethod
    async def list_for_citizen(self, citizen_id: str, limit: int, offset: int) -> List[Notification]:
        """Newest first."""

    @abstractmethod
    async def delete(self, citizen_id: str, notification_id: int) -> bool:
        ...

    @abstractmethod
    async def delete_all_for_citizen(self, citizen_id: str) -> int:
        ...

    @abstractmethod
    async def purge_expired(self, now: datetime, created_before: datetime) -> int:
        """Delete notifications expired at ``now`` or created before ``created_before``."""


class Session:
    """Repositories bound to one transaction, plus post-commit hooks."""

    reports: ReportRepository
    citizens: CitizenRepository
    events: EventRepository
    ledger: LedgerRepository
    notifications: NotificationRepository

    def __init__(self):
        self._post_commit: List[PostCommitHook] = []

    def after_commit(self, hook: PostCommitHook) -> None:
        """Register a best-effort hook to run once this transaction commits."""
        self._post_commit.append(hook)

    @property
    def pending_hooks(self) -> List[PostCommitHook]:
        return list(self._post_commit)


async def run_post_commit_hooks(hooks: List[PostCommitHook]) -> None:
    """Run hooks in order; failures are logged and swallowed."""
    for hook in hooks:
        name = getattr(hook, "__qualname__", repr(hook))
        try:
            await hook()
        except Exception as e:
            logger.warning(f"Post-commit hook {name} failed: {e}")


class Storage(ABC):
    """Transactional access to reports, citizens and the trails."""

    @abstractmethod
    def _begin(self) -> AsyncContextManager[Session]:
        """Open a session inside a transaction; commit on clean exit."""

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Session]:
        """Unit of work. Post-commit hooks run after the commit succeeds."""
        async with self._begin() as session:
            yield session
        await run_post_commit_hooks(session.pending_hooks)

    async def close(self) -> None:
        """Release resources held by the storage."""
