"""
Report event trail and citizen notification models.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any

from pydantic import BaseModel, Field, ConfigDict


class ReportEventType(str, Enum):
    REPORT_SUBMITTED = "REPORT_SUBMITTED"
    STATUS_UPDATED = "STATUS_UPDATED"
    POINTS_AWARDED = "POINTS_AWARDED"
    FEEDBACK_ADDED = "FEEDBACK_ADDED"
    MEDIA_UPLOADED = "MEDIA_UPLOADED"


class ReportEvent(BaseModel):
    """Immutable audit entry tied to one report."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    report_id: int
    type: ReportEventType
    title: Optional[str] = None
    description: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    citizen_id: Optional[str] = None
    user_id: Optional[str] = None
    created_at: datetime


class NotificationType(str, Enum):
    REPORT_STATUS = "REPORT_STATUS"
    POINTS = "POINTS"


class Notification(BaseModel):
    """Citizen-facing message, deleted once read or expired."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    citizen_id: str
    report_id: Optional[int] = None
    type: NotificationType = NotificationType.REPORT_STATUS
    title: str
    message: str
    created_at: datetime
    expires_at: datetime
