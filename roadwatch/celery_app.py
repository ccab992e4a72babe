"""
Celery application, queue definitions and task routing.

Only citizen SMS goes through Celery (USE_CELERY=true); everything else runs
in the request.
"""

import os

from celery import Celery
from kombu import Exchange, Queue

BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
RESULT_BACKEND = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# ---------------------------------------------------------------------------
# Retry policy for SMS delivery (override via environment variables)
# ---------------------------------------------------------------------------
SMS_MAX_RETRIES = int(os.getenv("CELERY_SMS_MAX_RETRIES", "3"))
SMS_RETRY_BACKOFF = int(os.getenv("CELERY_SMS_RETRY_BACKOFF", "30"))
SMS_RETRY_BACKOFF_MAX = int(os.getenv("CELERY_SMS_RETRY_BACKOFF_MAX", "300"))

app = Celery(
    "roadwatch",
    include=[
        "roadwatch.tasks.notification_tasks",
    ],
)

# ---------------------------------------------------------------------------
# Broker / result backend
# ---------------------------------------------------------------------------
app.conf.broker_url = BROKER_URL
app.conf.result_backend = RESULT_BACKEND

# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------
app.conf.accept_content = ["json"]
app.conf.task_serializer = "json"
app.conf.result_serializer = "json"

# ---------------------------------------------------------------------------
# Reliability
# ---------------------------------------------------------------------------
app.conf.task_acks_late = True
app.conf.worker_prefetch_multiplier = 1
app.conf.task_reject_on_worker_lost = True
app.conf.broker_connection_retry_on_startup = True

# ---------------------------------------------------------------------------
# Queue topology
# ---------------------------------------------------------------------------
default_exchange = Exchange("default", type="direct")
notifications_exchange = Exchange("notifications", type="direct")

app.conf.task_queues = (
    Queue("default", default_exchange, routing_key="default"),
    Queue("notifications", notifications_exchange, routing_key="notifications"),
)

app.conf.task_default_queue = "default"
app.conf.task_default_exchange = "default"
app.conf.task_default_routing_key = "default"

# ---------------------------------------------------------------------------
# Task routing
# ---------------------------------------------------------------------------
app.conf.task_routes = {
    "roadwatch.tasks.notification_tasks.send_status_update_sms": {"queue": "notifications"},
    "roadwatch.tasks.notification_tasks.send_points_update_sms": {"queue": "notifications"},
}
