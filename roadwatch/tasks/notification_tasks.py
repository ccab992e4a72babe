"""Celery tasks for citizen SMS delivery."""

import asyncio
import logging

from roadwatch.celery_app import (
    app,
    SMS_MAX_RETRIES,
    SMS_RETRY_BACKOFF,
    SMS_RETRY_BACKOFF_MAX,
)
from roadwatch.services.sms_service import SmsService

logger = logging.getLogger(__name__)


class SmsDeliveryError(Exception):
    """The SMS provider did not accept the message."""


@app.task(
    bind=True,
    name="roadwatch.tasks.notification_tasks.send_status_update_sms",
    acks_late=True,
    soft_time_limit=30,
    time_limit=60,
    max_retries=SMS_MAX_RETRIES,
    autoretry_for=(SmsDeliveryError,),
    retry_backoff=SMS_RETRY_BACKOFF,
    retry_backoff_max=SMS_RETRY_BACKOFF_MAX,
)
def send_status_update_sms(self, phone_ref: str, report_id: int, status: str):
    """Send the report status SMS."""
    sent = asyncio.run(SmsService().send_status_update(phone_ref, report_id, status))
    if not sent:
        raise SmsDeliveryError(f"Status SMS for report {report_id} not delivered")
    return {"report_id": report_id, "status": status}


@app.task(
    bind=True,
    name="roadwatch.tasks.notification_tasks.send_points_update_sms",
    acks_late=True,
    soft_time_limit=30,
    time_limit=60,
    max_retries=SMS_MAX_RETRIES,
    autoretry_for=(SmsDeliveryError,),
    retry_backoff=SMS_RETRY_BACKOFF,
    retry_backoff_max=SMS_RETRY_BACKOFF_MAX,
)
def send_points_update_sms(self, phone_ref: str, points: int, new_total: int):
    """Send the points-earned SMS."""
    sent = asyncio.run(SmsService().send_points_update(phone_ref, points, new_total))
    if not sent:
        raise SmsDeliveryError("Points SMS not delivered")
    return {"points": points, "total_points": new_total}
