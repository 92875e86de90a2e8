"""
Leaderboard service for the ranked arena.

Provides read-only sorted views over user profiles by total points or rank
points, and a user's position in either view.
"""

from typing import Union
import logging

from sqlalchemy import select, func
from arena.constants import LeaderboardConstants, ProfileDefaults
from arena.data_models.leaderboard import LeaderboardCategory, LeaderboardEntry, LeaderboardPage
from arena.database.models import UserProfile
from arena.services.base import BaseService
from arena.services.profile import profile_to_data
from arena.utils.exceptions import ProfileNotFoundError

logger = logging.getLogger(__name__)


class LeaderboardService(BaseService):
    """Service for leaderboard queries and ranking."""

    @staticmethod
    def _resolve_category(category: Union[str, LeaderboardCategory]) -> LeaderboardCategory:
        if isinstance(category, LeaderboardCategory):
            return category
        try:
            return LeaderboardCategory(category)
        except ValueError:
            valid = ", ".join(c.value for c in LeaderboardCategory)
            raise ValueError(f"category must be one of: {valid}") from None

    @staticmethod
    def _points_column(category: LeaderboardCategory):
        if category == LeaderboardCategory.RANK_POINTS:
            return UserProfile.total_rank_points
        return UserProfile.total_points

    async def get_leaderboard(
        self,
        category: Union[str, LeaderboardCategory] = LeaderboardCategory.GLOBAL,
        limit: int = LeaderboardConstants.DEFAULT_LIMIT
    ) -> LeaderboardPage:
        """Get the top users for a category, highest points first."""
        category = self._resolve_category(category)
        if not isinstance(limit, int) or limit < 1 or limit > LeaderboardConstants.MAX_LIMIT:
            raise ValueError(f"limit must be between 1 and {LeaderboardConstants.MAX_LIMIT}")

        points = self._points_column(category)
        async with self.get_session() as session:
            result = await session.execute(
                select(UserProfile)
                .order_by(func.coalesce(points, 0).desc(), UserProfile.id)
                .limit(limit)
            )
            profiles = result.scalars().all()

        entries = []
        for position, profile in enumerate(profiles, start=1):
            data = profile_to_data(profile)
            entries.append(LeaderboardEntry(
                position=position,
                user_id=profile.id,
                name=(profile.display_name or "").strip() or ProfileDefaults.LEADERBOARD_NAME,
                handle=profile.handle,
                avatar_url=profile.avatar_url,
                stats=data.stats
            ))

        logger.debug(f"Found {len(entries)} users for {category.value} leaderboard")
        return LeaderboardPage(entries=entries, category=category, limit=limit)

    async def get_user_rank_position(
        self,
        user_id: str,
        category: Union[str, LeaderboardCategory] = LeaderboardCategory.GLOBAL
    ) -> int:
        """
        Get a user's 1-based position: one more than the number of users with
        strictly more points.

        Raises:
            ProfileNotFoundError: If the user has no profile
        """
        category = self._resolve_category(category)
        points = self._points_column(category)

        async with self.get_session() as session:
            result = await session.execute(
                select(points).where(UserProfile.id == user_id)
            )
            row = result.first()
            if row is None:
                raise ProfileNotFoundError(user_id)
            user_points = row[0] or 0

            higher = await session.scalar(
                select(func.count(UserProfile.id))
                .where(func.coalesce(points, 0) > user_points)
            )

        return (higher or 0) + 1
