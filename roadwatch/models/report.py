"""
Violation report models.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List

from pydantic import AwareDatetime, BaseModel, Field, ConfigDict, field_validator, model_validator


class ViolationType(str, Enum):
    """Closed set of reportable violations."""
    SPEED_VIOLATION = "SPEED_VIOLATION"
    SIGNAL_JUMPING = "SIGNAL_JUMPING"
    WRONG_SIDE_DRIVING = "WRONG_SIDE_DRIVING"
    NO_PARKING_ZONE = "NO_PARKING_ZONE"
    HELMET_SEATBELT_VIOLATION = "HELMET_SEATBELT_VIOLATION"
    MOBILE_PHONE_USAGE = "MOBILE_PHONE_USAGE"
    LANE_CUTTING = "LANE_CUTTING"
    DRUNK_DRIVING_SUSPECTED = "DRUNK_DRIVING_SUSPECTED"
    OTHERS = "OTHERS"


class ReportStatus(str, Enum):
    """Review workflow status."""
    PENDING = "PENDING"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    DUPLICATE = "DUPLICATE"


# Statuses that carry a review timestamp
REVIEWED_STATUSES = frozenset({
    ReportStatus.APPROVED,
    ReportStatus.REJECTED,
    ReportStatus.DUPLICATE,
})


class ReportCreate(BaseModel):
    """Citizen submission payload."""
    violation_types: List[ViolationType] = Field(..., min_length=1)
    # Must carry a UTC offset; naive times are rejected
    occurred_at: AwareDatetime
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    description: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None

    # Vehicle
    vehicle_number: Optional[str] = None
    vehicle_type: Optional[str] = None
    vehicle_color: Optional[str] = None

    # Media references (upload handled elsewhere)
    photo_url: Optional[str] = None
    video_url: Optional[str] = None

    is_anonymous: bool = False

    @field_validator("vehicle_number")
    @classmethod
    def _blank_vehicle_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    @property
    def violation_type(self) -> ViolationType:
        """Primary violation type (first reported)."""
        return self.violation_types[0]


class ViolationReport(BaseModel):
    """Stored violation report."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    citizen_id: str
    violation_type: ViolationType
    violation_types: List[ViolationType] = Field(default_factory=list)
    occurred_at: datetime
    latitude: float
    longitude: float

    description: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None

    vehicle_number: Optional[str] = None
    vehicle_type: Optional[str] = None
    vehicle_color: Optional[str] = None

    photo_url: Optional[str] = None
    video_url: Optional[str] = None
    is_anonymous: bool = False

    # Lifecycle
    status: ReportStatus = ReportStatus.PENDING
    review_notes: Optional[str] = None
    reviewer_id: Optional[str] = None
    review_timestamp: Optional[datetime] = None
    points_awarded: int = 0
    is_first_reporter: bool = False

    # Duplicate annotation (set once at submission)
    is_duplicate: bool = False
    duplicate_group_id: Optional[str] = None
    confidence_score: Optional[float] = None

    # Citation
    challan_issued: bool = False
    challan_number: Optional[str] = None

    created_at: datetime
    updated_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _default_violation_types(self) -> "ViolationReport":
        if not self.violation_types:
            self.violation_types = [self.violation_type]
        return self


class StatusUpdate(BaseModel):
    """Police review decision."""
    status: ReportStatus
    review_notes: Optional[str] = None
    challan_issued: Optional[bool] = None
    challan_number: Optional[str] = None
    # Manual DUPLICATE override: the report this one duplicates
    duplicate_of: Optional[int] = None
