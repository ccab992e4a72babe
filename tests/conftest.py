"""
Shared fixtures: in-memory storage, a frozen clock, a recording SMS sender
and fully wired services.
"""

from datetime import datetime, timedelta, timezone

import pytest

from roadwatch.models import CitizenCreate, ReportCreate, ViolationType
from roadwatch.services import (
    CitizenService,
    NotificationService,
    ReportEventService,
    ReportLifecycleService,
    ReportingSettings,
    RewardsService,
    SmsDispatcher,
)
from roadwatch.storage import MemoryStorage

BASE_LAT = 12.9716
BASE_LON = 77.5946
# Roughly one meter of latitude, in degrees
METER_DEG = 1 / 111195

T0 = datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingSmsSender:
    """Stands in for SmsService; records every send."""

    def __init__(self):
        self.sent = []
        self.fail = False

    async def send_status_update(self, phone_ref, report_id, status):
        self.sent.append(("status", phone_ref, report_id, status))
        if self.fail:
            raise ConnectionError("SMS gateway unavailable")
        return True

    async def send_points_update(self, phone_ref, points, new_total):
        self.sent.append(("points", phone_ref, points, new_total))
        if self.fail:
            raise ConnectionError("SMS gateway unavailable")
        return True


@pytest.fixture
def clock():
    return FrozenClock(T0)


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def settings():
    return ReportingSettings()


@pytest.fixture
def sms_sender():
    return RecordingSmsSender()


@pytest.fixture
def sms(sms_sender):
    return SmsDispatcher(sms_sender)


@pytest.fixture
def notification_service(storage, settings, sms, clock):
    return NotificationService(storage, settings.notifications, sms=sms, clock=clock)


@pytest.fixture
def event_service(storage, notification_service, clock):
    return ReportEventService(storage, notification_service, clock=clock)


@pytest.fixture
def lifecycle(storage, settings, event_service, notification_service, clock):
    return ReportLifecycleService(
        storage,
        settings=settings,
        events=event_service,
        notifications=notification_service,
        clock=clock,
    )


@pytest.fixture
def rewards(storage, settings, clock):
    return RewardsService(storage, settings.points, clock=clock)


@pytest.fixture
def citizen_service(storage, clock):
    return CitizenService(storage, clock=clock)


@pytest.fixture
async def citizen(citizen_service):
    return await citizen_service.register_citizen(
        CitizenCreate(id="citizen-1", name="Asha", phone_ref="+91 98450 00001")
    )


@pytest.fixture
async def other_citizen(citizen_service):
    return await citizen_service.register_citizen(
        CitizenCreate(id="citizen-2", name="Ravi", phone_ref="+91 98450 00002")
    )


@pytest.fixture
def make_payload():
    """Factory for submission payloads around a fixed intersection."""

    def _make(north_m: float = 0.0, minutes: float = 0.0, **overrides) -> ReportCreate:
        data = {
            "violation_types": [ViolationType.SIGNAL_JUMPING],
            "occurred_at": T0 + timedelta(minutes=minutes),
            "latitude": BASE_LAT + north_m * METER_DEG,
            "longitude": BASE_LON,
            "description": "Car ran the red light",
        }
        data.update(overrides)
        return ReportCreate(**data)

    return _make
