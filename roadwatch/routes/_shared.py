"""
Shared state and service getters for route modules.
"""

import os
import logging
from typing import Optional, Dict, Any

from roadwatch.services import (
    CitizenService,
    NotificationService,
    ReportEventService,
    ReportLifecycleService,
    RewardsService,
    get_detector,
    get_settings,
    get_sms_dispatcher,
)
from roadwatch.storage import MemoryStorage, PostgresStorage, Storage

logger = logging.getLogger(__name__)

# Environment flags
USE_DATABASE = os.getenv("USE_DATABASE", "false").lower() == "true"
USE_CELERY = os.getenv("USE_CELERY", "false").lower() == "true"

_storage: Optional[Storage] = None
_services: Dict[str, Any] = {}


def get_storage() -> Storage:
    """Process-wide storage: PostgreSQL when USE_DATABASE=true, else in-memory."""
    global _storage
    if _storage is None:
        _storage = PostgresStorage() if USE_DATABASE else MemoryStorage()
        logger.info(f"Using {type(_storage).__name__}")
    return _storage


def set_storage(storage: Optional[Storage]) -> None:
    """Swap the storage and drop services bound to the old one."""
    global _storage
    _storage = storage
    _services.clear()


def get_notification_service() -> NotificationService:
    if "notifications" not in _services:
        _services["notifications"] = NotificationService(
            get_storage(),
            settings=get_settings().notifications,
            sms=get_sms_dispatcher(),
        )
    return _services["notifications"]


def get_event_service() -> ReportEventService:
    if "events" not in _services:
        _services["events"] = ReportEventService(get_storage(), get_notification_service())
    return _services["events"]


def get_lifecycle_service() -> ReportLifecycleService:
    if "lifecycle" not in _services:
        _services["lifecycle"] = ReportLifecycleService(
            get_storage(),
            settings=get_settings(),
            detector=get_detector(),
            events=get_event_service(),
            notifications=get_notification_service(),
        )
    return _services["lifecycle"]


def get_rewards_service() -> RewardsService:
    if "rewards" not in _services:
        _services["rewards"] = RewardsService(get_storage(), settings=get_settings().points)
    return _services["rewards"]


def get_citizen_service() -> CitizenService:
    if "citizens" not in _services:
        _services["citizens"] = CitizenService(get_storage())
    return _services["citizens"]
