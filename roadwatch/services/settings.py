"""
Settings for duplicate detection, points and notifications.

Settings are plain dataclasses that are passed explicitly into each service
at construction time. ``ReportingSettings.from_env()`` builds an instance from
``ROADWATCH_*`` environment variables once at process start; tests construct
their own instances with overridden values instead of mutating globals.
"""

import logging
import os
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any

from .thresholds import (
    DUPLICATE_TIME_WINDOW_MINUTES,
    DUPLICATE_BBOX_DELTA_DEG,
    DUPLICATE_CANDIDATE_LIMIT,
    DUPLICATE_CONFIDENCE_THRESHOLD,
    LOCATION_NEAR_METERS,
    LOCATION_FAR_METERS,
    LOCATION_NEAR_POINTS,
    LOCATION_FAR_POINTS,
    TIME_NEAR_MINUTES,
    TIME_FAR_MINUTES,
    TIME_NEAR_POINTS,
    TIME_FAR_POINTS,
    VEHICLE_MATCH_POINTS,
    POINTS_PER_APPROVED_REPORT,
    BONUS_POINTS_FIRST_REPORTER,
    MAX_REPORTS_PER_DAY,
    NOTIFICATION_TTL_DAYS,
    NOTIFICATION_PAGE_SIZE,
    RECENT_TRANSACTIONS_LIMIT,
)

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid value for {name}: {raw!r}")
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid value for {name}: {raw!r}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.lower() in ("1", "true", "yes", "on")


@dataclass
class DuplicateDetectionSettings:
    """Duplicate detection window, scoring tiers and decision threshold."""
    time_window_minutes: int = DUPLICATE_TIME_WINDOW_MINUTES
    bbox_delta_deg: float = DUPLICATE_BBOX_DELTA_DEG
    candidate_limit: int = DUPLICATE_CANDIDATE_LIMIT
    confidence_threshold: float = DUPLICATE_CONFIDENCE_THRESHOLD

    # Scoring tiers
    location_near_meters: float = LOCATION_NEAR_METERS
    location_far_meters: float = LOCATION_FAR_METERS
    location_near_points: int = LOCATION_NEAR_POINTS
    location_far_points: int = LOCATION_FAR_POINTS
    time_near_minutes: int = TIME_NEAR_MINUTES
    time_far_minutes: int = TIME_FAR_MINUTES
    time_near_points: int = TIME_NEAR_POINTS
    time_far_points: int = TIME_FAR_POINTS
    vehicle_match_points: int = VEHICLE_MATCH_POINTS


@dataclass
class PointsSettings:
    """Reward points configuration."""
    points_per_approval: int = POINTS_PER_APPROVED_REPORT
    first_reporter_bonus: int = BONUS_POINTS_FIRST_REPORTER
    # Multiply base points by the number of distinct co-reported violation types
    scale_points_by_violation_count: bool = False
    # First-reporter search window (same semantics as the duplicate window)
    first_reporter_window_minutes: int = DUPLICATE_TIME_WINDOW_MINUTES
    first_reporter_bbox_delta_deg: float = DUPLICATE_BBOX_DELTA_DEG
    recent_transactions_limit: int = RECENT_TRANSACTIONS_LIMIT


@dataclass
class NotificationSettings:
    """Citizen notification configuration."""
    ttl_days: int = NOTIFICATION_TTL_DAYS
    page_size: int = NOTIFICATION_PAGE_SIZE
    sms_enabled: bool = True


@dataclass
class SubmissionSettings:
    """Report submission limits."""
    max_reports_per_day: int = MAX_REPORTS_PER_DAY


@dataclass
class ReportingSettings:
    """All configuration consumed by the reporting core."""
    duplicates: DuplicateDetectionSettings = field(default_factory=DuplicateDetectionSettings)
    points: PointsSettings = field(default_factory=PointsSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    submission: SubmissionSettings = field(default_factory=SubmissionSettings)

    @classmethod
    def from_env(cls) -> "ReportingSettings":
        """Build settings from ROADWATCH_* environment variables."""
        return cls(
            duplicates=DuplicateDetectionSettings(
                time_window_minutes=_env_int(
                    "ROADWATCH_DUPLICATE_TIME_WINDOW_MINUTES", DUPLICATE_TIME_WINDOW_MINUTES),
                bbox_delta_deg=_env_float(
                    "ROADWATCH_DUPLICATE_BBOX_DELTA_DEG", DUPLICATE_BBOX_DELTA_DEG),
                confidence_threshold=_env_float(
                    "ROADWATCH_DUPLICATE_CONFIDENCE_THRESHOLD", DUPLICATE_CONFIDENCE_THRESHOLD),
            ),
            points=PointsSettings(
                points_per_approval=_env_int(
                    "ROADWATCH_POINTS_PER_APPROVAL", POINTS_PER_APPROVED_REPORT),
                first_reporter_bonus=_env_int(
                    "ROADWATCH_FIRST_REPORTER_BONUS", BONUS_POINTS_FIRST_REPORTER),
                scale_points_by_violation_count=_env_bool(
                    "ROADWATCH_SCALE_POINTS_BY_VIOLATION_COUNT", False),
            ),
            notifications=NotificationSettings(
                ttl_days=_env_int("ROADWATCH_NOTIFICATION_TTL_DAYS", NOTIFICATION_TTL_DAYS),
                sms_enabled=_env_bool("ROADWATCH_SMS_ENABLED", True),
            ),
            submission=SubmissionSettings(
                max_reports_per_day=_env_int("ROADWATCH_MAX_REPORTS_PER_DAY", MAX_REPORTS_PER_DAY),
            ),
        )

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


# Process-wide settings loaded once from the environment (HTTP layer only)
_settings: Optional[ReportingSettings] = None


def get_settings() -> ReportingSettings:
    """Get the env-derived settings instance, loading it on first use."""
    global _settings
    if _settings is None:
        _settings = ReportingSettings.from_env()
        logger.info("Reporting settings loaded from environment")
    return _settings
