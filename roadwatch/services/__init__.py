"""
Reporting core services.
"""

from .citizen_service import CitizenService
from .duplicate_detection import (
    CandidateFinder,
    DuplicateDecision,
    DuplicateDetector,
    calculate_confidence_score,
    get_detector,
)
from .errors import (
    ReportingError,
    ReportNotFoundError,
    CitizenNotFoundError,
    NotificationNotFoundError,
    InvalidTransitionError,
    DailyLimitExceededError,
    InsufficientPointsError,
)
from .event_service import ReportEventService
from .notification_service import NotificationService
from .report_lifecycle import ReportLifecycleService, ALLOWED_TRANSITIONS, can_transition
from .rewards_service import RewardsService, audit_ledger
from .settings import (
    DuplicateDetectionSettings,
    PointsSettings,
    NotificationSettings,
    SubmissionSettings,
    ReportingSettings,
    get_settings,
)
from .sms_service import SmsService, SmsDispatcher, get_sms_dispatcher

__all__ = [
    # Citizens
    "CitizenService",
    # Duplicate Detection
    "CandidateFinder",
    "DuplicateDecision",
    "DuplicateDetector",
    "calculate_confidence_score",
    "get_detector",
    # Errors
    "ReportingError",
    "ReportNotFoundError",
    "CitizenNotFoundError",
    "NotificationNotFoundError",
    "InvalidTransitionError",
    "DailyLimitExceededError",
    "InsufficientPointsError",
    # Lifecycle
    "ReportLifecycleService",
    "ALLOWED_TRANSITIONS",
    "can_transition",
    # Trail
    "ReportEventService",
    "NotificationService",
    # Rewards
    "RewardsService",
    "audit_ledger",
    # Settings
    "DuplicateDetectionSettings",
    "PointsSettings",
    "NotificationSettings",
    "SubmissionSettings",
    "ReportingSettings",
    "get_settings",
    # SMS
    "SmsService",
    "SmsDispatcher",
    "get_sms_dispatcher",
]
