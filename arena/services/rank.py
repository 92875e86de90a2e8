"""
Rank service: persists the tier implied by a user's rank points.
"""

import logging
from sqlalchemy import select, update

from arena.database.models import UserProfile, utc_now
from arena.services.base import BaseService
from arena.utils.exceptions import ProfileNotFoundError
from arena.utils.ranking import compute_rank

logger = logging.getLogger(__name__)


class RankService(BaseService):
    """Recomputes and stores rank tiers."""

    async def update_user_ranks(self, user_id: str) -> str:
        """
        Recompute a user's tier from their rank points and store it.

        The tier is written even when unchanged, along with a fresh
        last_active, so calling this redundantly is harmless.

        Returns:
            The stored tier name
        """
        async with self.get_session() as session:
            result = await session.execute(
                select(UserProfile.total_rank_points).where(UserProfile.id == user_id)
            )
            row = result.first()
            if row is None:
                raise ProfileNotFoundError(user_id)

            rank_points = row.total_rank_points or 0
            new_rank = compute_rank(rank_points)
            await session.execute(
                update(UserProfile)
                .where(UserProfile.id == user_id)
                .values(rank=new_rank, last_active=utc_now())
                .execution_options(synchronize_session=False)
            )

        logger.info(f"User {user_id} has {rank_points} rank points, rank: {new_rank}")
        return new_rank
