"""
Citizen rewards: balances, recent ledger activity and redemption.
"""

import logging
from typing import List, Optional

from roadwatch.models import Citizen, PointsTransaction, RewardsSummary, TransactionType
from roadwatch.storage import Storage
from roadwatch.utils.clock import Clock, utcnow

from .errors import CitizenNotFoundError, InsufficientPointsError, ReportingError
from .settings import PointsSettings

logger = logging.getLogger(__name__)


class RewardsService:

    def __init__(
        self,
        storage: Storage,
        settings: Optional[PointsSettings] = None,
        clock: Clock = utcnow,
    ):
        self.storage = storage
        self.settings = settings or PointsSettings()
        self.clock = clock

    async def get_rewards(self, citizen_id: str) -> RewardsSummary:
        """Balances, counters and the most recent ledger entries."""
        async with self.storage.transaction() as session:
            citizen = await session.citizens.find_by_id(citizen_id)
            if citizen is None:
                raise CitizenNotFoundError(citizen_id)
            recent = await session.ledger.list_for_citizen(
                citizen_id,
                limit=self.settings.recent_transactions_limit,
                newest_first=True,
            )

        return RewardsSummary(
            citizen_id=citizen.id,
            total_points=citizen.total_points,
            points_earned=citizen.points_earned,
            points_redeemed=citizen.points_redeemed,
            reports_submitted=citizen.reports_submitted,
            reports_approved=citizen.reports_approved,
            accuracy_rate=citizen.accuracy_rate,
            recent_transactions=recent,
        )

    async def redeem_points(
        self,
        citizen_id: str,
        points: int,
        description: Optional[str] = None,
    ) -> PointsTransaction:
        """Spend points from the citizen's balance. Appends a REDEEM ledger entry."""
        if points <= 0:
            raise ReportingError(f"Points to redeem must be positive, got {points}")

        now = self.clock()
        async with self.storage.transaction() as session:
            citizen = await session.citizens.find_by_id(citizen_id)
            if citizen is None:
                raise CitizenNotFoundError(citizen_id)
            if points > citizen.total_points:
                raise InsufficientPointsError(points, citizen.total_points)

            new_total = citizen.total_points - points
            await session.citizens.update(citizen_id, {
                'points_redeemed': citizen.points_redeemed + points,
                'total_points': new_total,
                'updated_at': now,
            })
            txn = await session.ledger.append({
                'citizen_id': citizen_id,
                'type': TransactionType.REDEEM,
                'points': -points,
                'balance_after': new_total,
                'description': description or f"Redeemed {points} points",
                'created_at': now,
            })

        logger.info(f"Citizen {citizen_id} redeemed {points} points, balance {new_total}")
        return txn


def audit_ledger(citizen: Citizen, transactions: List[PointsTransaction]) -> List[str]:
    """
    Replay a citizen's ledger (oldest first) against their balances.

    Returns a list of human-readable discrepancies; empty means consistent.
    """
    issues = []
    balance = 0
    earned = 0
    redeemed = 0

    for txn in transactions:
        balance += txn.points
        if txn.type == TransactionType.EARN:
            earned += txn.points
        else:
            redeemed += -txn.points
        if txn.balance_after != balance:
            issues.append(
                f"transaction {txn.id}: balance_after {txn.balance_after}, replay gives {balance}"
            )

    if balance != citizen.total_points:
        issues.append(f"total_points {citizen.total_points}, ledger sums to {balance}")
    if earned != citizen.points_earned:
        issues.append(f"points_earned {citizen.points_earned}, ledger earned {earned}")
    if redeemed != citizen.points_redeemed:
        issues.append(f"points_redeemed {citizen.points_redeemed}, ledger redeemed {redeemed}")
    return issues
