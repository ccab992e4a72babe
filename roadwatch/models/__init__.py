"""
Pydantic models for the Roadwatch API.
"""

from .report import (
    ViolationType,
    ReportStatus,
    REVIEWED_STATUSES,
    ReportCreate,
    ViolationReport,
    StatusUpdate,
)
from .citizen import (
    Citizen,
    CitizenCreate,
    accuracy_rate,
    TransactionType,
    PointsTransaction,
    RedeemRequest,
    RewardsSummary,
)
from .event import (
    ReportEventType,
    ReportEvent,
    NotificationType,
    Notification,
)

__all__ = [
    # Report
    "ViolationType",
    "ReportStatus",
    "REVIEWED_STATUSES",
    "ReportCreate",
    "ViolationReport",
    "StatusUpdate",
    # Citizen
    "Citizen",
    "CitizenCreate",
    "accuracy_rate",
    "TransactionType",
    "PointsTransaction",
    "RedeemRequest",
    "RewardsSummary",
    # Events
    "ReportEventType",
    "ReportEvent",
    "NotificationType",
    "Notification",
]
