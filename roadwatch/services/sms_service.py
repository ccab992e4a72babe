"""
SMS delivery for citizen status and points updates.

``SmsService`` talks to the Twilio REST API over httpx. Without credentials it
runs in mock mode and only logs the message.

``SmsDispatcher`` is the fire-and-forget front used by the reporting core:
sends are detached from the request (an asyncio task, or a Celery task when
USE_CELERY=true) and failures are logged, never raised to the caller.
"""

import asyncio
import logging
import os
from typing import Optional, Set

import httpx

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"

STATUS_UPDATE_TEMPLATE = (
    "Your traffic violation report #{report_id} has been {status}. "
    "Check the app for details."
)
POINTS_UPDATE_TEMPLATE = (
    "Congratulations! You earned {points} points for your report. "
    "Total points: {total}. Keep reporting violations safely!"
)


def format_number(number: str) -> str:
    """Standardize phone number format"""
    return number.strip().replace(" ", "").replace("-", "")


class SmsService:
    """Twilio-backed SMS sender with a logging mock mode."""

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        timeout: float = 10.0,
    ):
        self.account_sid = account_sid if account_sid is not None else os.getenv("TWILIO_ACCOUNT_SID")
        self.auth_token = auth_token if auth_token is not None else os.getenv("TWILIO_AUTH_TOKEN")
        self.from_number = from_number or os.getenv("TWILIO_PHONE_NUMBER", "+1234567890")
        self.timeout = timeout

    @property
    def is_mock(self) -> bool:
        return not self.account_sid or not self.auth_token

    async def send(self, phone_ref: str, message: str) -> bool:
        """Send one SMS. Returns False on delivery failure."""
        to = format_number(phone_ref)

        if self.is_mock:
            logger.info(f"[MOCK SMS] To: {to}, Message: {message}")
            return True

        url = f"{TWILIO_API_BASE}/Accounts/{self.account_sid}/Messages.json"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    url,
                    data={"From": self.from_number, "To": to, "Body": message},
                    auth=(self.account_sid, self.auth_token),
                )
                response.raise_for_status()
            logger.info(f"SMS sent to {to}")
            return True
        except httpx.HTTPError as e:
            logger.error(f"SMS sending failed for {to}: {e}")
            return False

    async def send_status_update(self, phone_ref: str, report_id: int, status: str) -> bool:
        message = STATUS_UPDATE_TEMPLATE.format(report_id=report_id, status=status.lower())
        return await self.send(phone_ref, message)

    async def send_points_update(self, phone_ref: str, points: int, new_total: int) -> bool:
        message = POINTS_UPDATE_TEMPLATE.format(points=points, total=new_total)
        return await self.send(phone_ref, message)


class SmsDispatcher:
    """Detached, best-effort SMS dispatch."""

    def __init__(self, sender: Optional[SmsService] = None, use_celery: bool = False):
        self.sender = sender or SmsService()
        self.use_celery = use_celery
        self._tasks: Set[asyncio.Task] = set()

    def dispatch_status_update(self, phone_ref: str, report_id: int, status: str) -> None:
        if self.use_celery:
            self._enqueue("send_status_update_sms", phone_ref, report_id, status)
            return
        self._spawn(self.sender.send_status_update(phone_ref, report_id, status))

    def dispatch_points_update(self, phone_ref: str, points: int, new_total: int) -> None:
        if self.use_celery:
            self._enqueue("send_points_update_sms", phone_ref, points, new_total)
            return
        self._spawn(self.sender.send_points_update(phone_ref, points, new_total))

    async def drain(self) -> None:
        """Wait for in-flight sends (used on shutdown and in tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"SMS dispatch failed: {exc}")
        elif task.result() is False:
            logger.warning("SMS dispatch reported a delivery failure")

    def _enqueue(self, task_name: str, *args) -> None:
        try:
            from roadwatch.tasks import notification_tasks
            getattr(notification_tasks, task_name).delay(*args)
        except Exception as e:
            logger.warning(f"Failed to enqueue {task_name}: {e}")


# Singleton instance
_dispatcher: Optional[SmsDispatcher] = None


def get_sms_dispatcher() -> SmsDispatcher:
    """Get the singleton SmsDispatcher instance."""
    global _dispatcher
    if _dispatcher is None:
        use_celery = os.getenv("USE_CELERY", "false").lower() == "true"
        _dispatcher = SmsDispatcher(SmsService(), use_celery=use_celery)
    return _dispatcher
