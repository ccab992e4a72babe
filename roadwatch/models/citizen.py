"""
Citizen and points ledger models.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, Field, ConfigDict


class Citizen(BaseModel):
    """Reporting citizen with aggregate counters and point balances."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: Optional[str] = None
    # Opaque phone reference passed through to the SMS sender
    phone_ref: Optional[str] = None
    is_verified: bool = False
    notification_enabled: bool = True

    reports_submitted: int = 0
    reports_approved: int = 0
    accuracy_rate: float = 0.0

    total_points: int = 0
    points_earned: int = 0
    points_redeemed: int = 0

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CitizenCreate(BaseModel):
    """Registration payload."""
    id: str = Field(..., min_length=1)
    name: Optional[str] = None
    phone_ref: Optional[str] = None
    is_verified: bool = False
    notification_enabled: bool = True


def accuracy_rate(reports_approved: int, reports_submitted: int) -> float:
    """Approved / submitted, 0 when nothing was submitted."""
    if reports_submitted <= 0:
        return 0.0
    return reports_approved / reports_submitted


class TransactionType(str, Enum):
    EARN = "EARN"
    REDEEM = "REDEEM"


class PointsTransaction(BaseModel):
    """Append-only ledger entry. ``points`` is signed (negative for REDEEM)."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    citizen_id: str
    type: TransactionType
    points: int
    balance_after: int
    report_id: Optional[int] = None
    description: Optional[str] = None
    created_at: datetime


class RedeemRequest(BaseModel):
    points: int = Field(..., gt=0)
    description: Optional[str] = None


class RewardsSummary(BaseModel):
    citizen_id: str
    total_points: int
    points_earned: int
    points_redeemed: int
    reports_submitted: int
    reports_approved: int
    accuracy_rate: float
    recent_transactions: List[PointsTransaction] = Field(default_factory=list)
