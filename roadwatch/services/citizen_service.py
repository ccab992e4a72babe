"""
Citizen registry.
"""

import logging
from typing import Optional

from roadwatch.models import Citizen, CitizenCreate
from roadwatch.storage import Storage
from roadwatch.utils.clock import Clock, utcnow

from .errors import CitizenNotFoundError

logger = logging.getLogger(__name__)


class CitizenService:

    def __init__(self, storage: Storage, clock: Clock = utcnow):
        self.storage = storage
        self.clock = clock

    async def register_citizen(self, payload: CitizenCreate) -> Citizen:
        """Create a citizen with zeroed counters. Returns the stored row if the id exists."""
        async with self.storage.transaction() as session:
            existing = await session.citizens.find_by_id(payload.id)
            if existing is not None:
                return existing

            now = self.clock()
            citizen = await session.citizens.create(Citizen(
                id=payload.id,
                name=payload.name,
                phone_ref=payload.phone_ref,
                is_verified=payload.is_verified,
                notification_enabled=payload.notification_enabled,
                created_at=now,
                updated_at=now,
            ))

        logger.info(f"Registered citizen {citizen.id}")
        return citizen

    async def get_citizen(self, citizen_id: str) -> Citizen:
        async with self.storage.transaction() as session:
            citizen = await session.citizens.find_by_id(citizen_id)
        if citizen is None:
            raise CitizenNotFoundError(citizen_id)
        return citizen
