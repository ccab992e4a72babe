"""
Citizen rewards routes.
"""

import logging

from fastapi import APIRouter, Depends

from roadwatch.models import RedeemRequest, RewardsSummary
from roadwatch.routes._shared import get_rewards_service
from roadwatch.services import RewardsService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Rewards"])


@router.get("/api/citizens/{citizen_id}/rewards", response_model=RewardsSummary)
async def get_rewards(
    citizen_id: str,
    service: RewardsService = Depends(get_rewards_service),
):
    return await service.get_rewards(citizen_id)


@router.post("/api/citizens/{citizen_id}/rewards/redeem")
async def redeem_points(
    citizen_id: str,
    request: RedeemRequest,
    service: RewardsService = Depends(get_rewards_service),
):
    txn = await service.redeem_points(citizen_id, request.points, request.description)
    return {"success": True, "transaction": txn, "total_points": txn.balance_after}
