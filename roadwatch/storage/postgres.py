"""
PostgreSQL storage backed by the asyncpg pool in ``roadwatch.database``.

Each session wraps one pooled connection with an open transaction; every
repository of the session issues its queries on that connection.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Tuple

from asyncpg import Connection

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

REPORT_COLUMNS = {
    'citizen_id', 'violation_type', 'violation_types', 'occurred_at',
    'latitude', 'longitude', 'description', 'address', 'city', 'district',
    'state', 'pincode', 'vehicle_number', 'vehicle_type', 'vehicle_color',
    'photo_url', 'video_url', 'is_anonymous', 'status', 'review_notes',
    'reviewer_id', 'review_timestamp', 'points_awarded', 'is_first_reporter',
    'is_duplicate', 'duplicate_group_id', 'confidence_score',
    'challan_issued', 'challan_number', 'created_at', 'updated_at',
}

CITIZEN_COLUMNS = {
    'id', 'name', 'phone_ref', 'is_verified', 'notification_enabled',
    'reports_submitted', 'reports_approved', 'accuracy_rate',
    'total_points', 'points_earned', 'points_redeemed',
    'created_at', 'updated_at',
}

EVENT_COLUMNS = {
    'report_id', 'type', 'title', 'description', 'metadata',
    'citizen_id', 'user_id', 'created_at',
}

LEDGER_COLUMNS = {
    'citizen_id', 'type', 'points', 'balance_after', 'report_id',
    'description', 'created_at',
}

NOTIFICATION_COLUMNS = {
    'citizen_id', 'report_id', 'type', 'title', 'message',
    'created_at', 'expires_at',
}


def _to_db(value: Any) -> Any:
    """Unwrap enums (also inside lists) for asyncpg."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [_to_db(v) for v in value]
    return value


def _insert_sql(table: str, data: Dict[str, Any], allowed: Iterable[str]) -> Tuple[str, list]:
    allowed = set(allowed)
    columns = [key for key in data if key in allowed]
    unknown = set(data) - allowed
    if unknown:
        raise ValueError(f"Unknown columns for {table}: {sorted(unknown)}")
    placeholders = ', '.join(f'${i}' for i in range(1, len(columns) + 1))
    query = f"""
        INSERT INTO {table} ({', '.join(columns)})
        VALUES ({placeholders})
        RETURNING *
    """
    return query, [_to_db(data[c]) for c in columns]


def _update_sql(table: str, key_column: str, key: Any, patch: Dict[str, Any],
                allowed: Iterable[str]) -> Tuple[str, list]:
    allowed = set(allowed)
    set_clauses = []
    params = []
    param_num = 1

    for field_name, value in patch.items():
        if field_name not in allowed:
            raise ValueError(f"Field {field_name!r} cannot be updated on {table}")
        set_clauses.append(f"{field_name} = ${param_num}")
        params.append(_to_db(value))
        param_num += 1

    if not set_clauses:
        raise ValueError("No valid fields to update")

    params.append(key)
    query = f"""
        UPDATE {table}
        SET {', '.join(set_clauses)}
        WHERE {key_column} = ${param_num}
        RETURNING *
    """
    return query, params


class PostgresReportRepository(ReportRepository):

    def __init__(self, conn: Connection):
        self._conn = conn

    async def create(self, data: Dict[str, Any]) -> ViolationReport:
        query, params = _insert_sql('violation_reports', data, REPORT_COLUMNS)
        row = await self._conn.fetchrow(query, *params)
        return ViolationReport.model_validate(dict(row))

    async def find_by_id(self, report_id: int) -> Optional[ViolationReport]:
        row = await self._conn.fetchrow(
            "SELECT * FROM violation_reports WHERE id = $1", report_id
        )
        return ViolationReport.model_validate(dict(row)) if row else None

    async def update(self, report_id: int, patch: Dict[str, Any]) -> ViolationReport:
        query, params = _update_sql('violation_reports', 'id', report_id, patch, REPORT_COLUMNS)
        row = await self._conn.fetchrow(query, *params)
        return ViolationReport.model_validate(dict(row))

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
        rows = await self._conn.fetch("""
            SELECT *
            FROM violation_reports
            WHERE violation_type = $1
              AND occurred_at BETWEEN $2 AND $3
              AND latitude BETWEEN $4 AND $5
              AND longitude BETWEEN $6 AND $7
              AND ($8::text IS NULL OR status <> $8::text)
              AND ($9::text IS NULL OR status = $9::text)
              AND ($10::bigint IS NULL OR id <> $10::bigint)
            ORDER BY created_at DESC, id DESC
            LIMIT $11
        """,
            _to_db(violation_type), window_start, window_end,
            bbox.min_lat, bbox.max_lat, bbox.min_lon, bbox.max_lon,
            _to_db(exclude_status), _to_db(status), exclude_report_id,
            limit,
        )
        return [ViolationReport.model_validate(dict(r)) for r in rows]

    async def find_group(self, group_id: str) -> List[ViolationReport]:
        rows = await self._conn.fetch("""
            SELECT *
            FROM violation_reports
            WHERE duplicate_group_id = $1
              AND status <> 'REJECTED'
            ORDER BY created_at ASC, id ASC
        """, group_id)
        return [ViolationReport.model_validate(dict(r)) for r in rows]

    async def reassign_group(self, old_group_id: str, new_group_id: str) -> int:
        status = await self._conn.execute("""
            UPDATE violation_reports
            SET duplicate_group_id = $2
            WHERE duplicate_group_id = $1
        """, old_group_id, new_group_id)
        return _affected_rows(status)

    async def list_reports(
        self,
        citizen_id: Optional[str] = None,
        status: Optional[ReportStatus] = None,
        violation_type: Optional[ViolationType] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[ViolationReport]:
        conditions = []
        params: List[Any] = []
        param_num = 1

        if citizen_id is not None:
            conditions.append(f"citizen_id = ${param_num}")
            params.append(citizen_id)
            param_num += 1
        if status is not None:
            conditions.append(f"status = ${param_num}")
            params.append(_to_db(status))
            param_num += 1
        if violation_type is not None:
            conditions.append(f"violation_type = ${param_num}")
            params.append(_to_db(violation_type))
            param_num += 1

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        params.extend([limit, offset])
        rows = await self._conn.fetch(f"""
            SELECT * FROM violation_reports
            {where}
            ORDER BY created_at DESC, id DESC
            LIMIT ${param_num} OFFSET ${param_num + 1}
        """, *params)
        return [ViolationReport.model_validate(dict(r)) for r in rows]

    async def count_created_since(self, citizen_id: str, since: datetime) -> int:
        return await self._conn.fetchval("""
            SELECT COUNT(*) FROM violation_reports
            WHERE citizen_id = $1 AND created_at >= $2
        """, citizen_id, since)


class PostgresCitizenRepository(CitizenRepository):

    def __init__(self, conn: Connection):
        self._conn = conn

    async def find_by_id(self, citizen_id: str) -> Optional[Citizen]:
        # Row lock: stats and balances are read-modify-written in the same transaction
        row = await self._conn.fetchrow(
            "SELECT * FROM citizens WHERE id = $1 FOR UPDATE", citizen_id
        )
        return Citizen.model_validate(dict(row)) if row else None

    async def create(self, citizen: Citizen) -> Citizen:
        data = citizen.model_dump(exclude_none=True)
        query, params = _insert_sql('citizens', data, CITIZEN_COLUMNS)
        row = await self._conn.fetchrow(query, *params)
        return Citizen.model_validate(dict(row))

    async def update(self, citizen_id: str, patch: Dict[str, Any]) -> Citizen:
        query, params = _update_sql('citizens', 'id', citizen_id, patch, CITIZEN_COLUMNS)
        row = await self._conn.fetchrow(query, *params)
        return Citizen.model_validate(dict(row))


class PostgresEventRepository(EventRepository):

    def __init__(self, conn: Connection):
        self._conn = conn

    async def append(self, data: Dict[str, Any]) -> ReportEvent:
        query, params = _insert_sql('report_events', data, EVENT_COLUMNS)
        row = await self._conn.fetchrow(query, *params)
        return ReportEvent.model_validate(dict(row))

    async def list_for_report(self, report_id: int) -> List[ReportEvent]:
        rows = await self._conn.fetch("""
            SELECT * FROM report_events
            WHERE report_id = $1
            ORDER BY created_at ASC, id ASC
        """, report_id)
        return [ReportEvent.model_validate(dict(r)) for r in rows]


class PostgresLedgerRepository(LedgerRepository):

    def __init__(self, conn: Connection):
        self._conn = conn

    async def append(self, data: Dict[str, Any]) -> PointsTransaction:
        query, params = _insert_sql('points_transactions', data, LEDGER_COLUMNS)
        row = await self._conn.fetchrow(query, *params)
        return PointsTransaction.model_validate(dict(row))

    async def list_for_citizen(
        self,
        citizen_id: str,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[PointsTransaction]:
        order = "DESC" if newest_first else "ASC"
        rows = await self._conn.fetch(f"""
            SELECT * FROM points_transactions
            WHERE citizen_id = $1
            ORDER BY created_at {order}, id {order}
            LIMIT $2
        """, citizen_id, limit)
        return [PointsTransaction.model_validate(dict(r)) for r in rows]


class PostgresNotificationRepository(NotificationRepository):

    def __init__(self, conn: Connection):
        self._conn = conn

    async def create(self, data: Dict[str, Any]) -> Notification:
        query, params = _insert_sql('notifications', data, NOTIFICATION_COLUMNS)
        row = await self._conn.fetchrow(query, *params)
        return Notification.model_validate(dict(row))

    async def list_for_citizen(self, citizen_id: str, limit: int, offset: int) -> List[Notification]:
        rows = await self._conn.fetch("""
            SELECT * FROM notifications
            WHERE citizen_id = $1
            ORDER BY created_at DESC, id DESC
            LIMIT $2 OFFSET $3
        """, citizen_id, limit, offset)
        return [Notification.model_validate(dict(r)) for r in rows]

    async def delete(self, citizen_id: str, notification_id: int) -> bool:
        deleted = await self._conn.fetchval("""
            DELETE FROM notifications
            WHERE id = $1 AND citizen_id = $2
            RETURNING id
        """, notification_id, citizen_id)
        return deleted is not None

    async def delete_all_for_citizen(self, citizen_id: str) -> int:
        status = await self._conn.execute(
            "DELETE FROM notifications WHERE citizen_id = $1", citizen_id
        )
        return _affected_rows(status)

    async def purge_expired(self, now: datetime, created_before: datetime) -> int:
        status = await self._conn.execute("""
            DELETE FROM notifications
            WHERE expires_at <= $1 OR created_at < $2
        """, now, created_before)
        return _affected_rows(status)


def _affected_rows(status: str) -> int:
    """Parse asyncpg's command status tag, e.g. 'DELETE 3'."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


class PostgresSession(Session):

    def __init__(self, conn: Connection):
        super().__init__()
        self.conn = conn
        self.reports = PostgresReportRepository(conn)
        self.citizens = PostgresCitizenRepository(conn)
        self.events = PostgresEventRepository(conn)
        self.ledger = PostgresLedgerRepository(conn)
        self.notifications = PostgresNotificationRepository(conn)


class PostgresStorage(Storage):
    """Storage on the shared asyncpg pool."""

    @asynccontextmanager
    async def _begin(self) -> AsyncIterator[PostgresSession]:
        from roadwatch.database import get_transaction

        async with get_transaction() as conn:
            yield PostgresSession(conn)

    async def close(self) -> None:
        from roadwatch.database import close_pool
        await close_pool()
