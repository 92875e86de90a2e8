"""
Profile service for the ranked arena.

Owns user profile rows: read-or-create with defaults, user-editable fields,
solved-problem history and the atomic stat increments applied by match
resolution.
"""

import logging
import math
from typing import Optional
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from arena.constants import ProfileDefaults, RewardConstants
from arena.data_models.profile import ProfileData, ProfilePatch, ProfileStats, StatsIncrement
from arena.database.models import UserProfile, utc_now
from arena.services.base import BaseService
from arena.utils.exceptions import PermissionDeniedError, ProfileNotFoundError, StorageError, ValidationError
from arena.utils.ranking import compute_rank

logger = logging.getLogger(__name__)

# Stats columns and the value a missing one is backfilled with
STATS_DEFAULTS = {
    'problems_solved': 0,
    'current_streak': 0,
    'best_streak': 0,
    'total_points': 0,
    'total_rank_points': 0,
    'rank_wins': 0,
    'rank_matches': 0,
}


def profile_to_data(profile: UserProfile) -> ProfileData:
    """Immutable view of a profile row, with NULL stats read as zero"""
    stats = ProfileStats(
        problems_solved=profile.problems_solved or 0,
        current_streak=profile.current_streak or 0,
        best_streak=profile.best_streak or 0,
        average_solve_time=profile.average_solve_time,
        total_points=profile.total_points or 0,
        total_rank_points=profile.total_rank_points or 0,
        rank_wins=profile.rank_wins or 0,
        rank_matches=profile.rank_matches or 0,
        rank=profile.rank or compute_rank(profile.total_rank_points or 0)
    )
    return ProfileData(
        user_id=profile.id,
        display_name=profile.display_name or ProfileDefaults.DISPLAY_NAME,
        handle=profile.handle,
        avatar_url=profile.avatar_url,
        stats=stats,
        solved_problems=list(profile.solved_problems or []),
        created_at=profile.created_at,
        last_active=profile.last_active
    )


class ProfileService(BaseService):
    """Service for user profile reads and mutations."""

    def __init__(self, session_factory):
        super().__init__(session_factory)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_user_profile(self, user_id: str) -> ProfileData:
        """Fetch a profile, materializing it with zeroed stats if missing."""
        return await self.ensure_profile(user_id)

    async def ensure_profile(self, user_id: str) -> ProfileData:
        """
        Read-or-create a profile and backfill any missing stats columns.

        Args:
            user_id: Auth user id

        Returns:
            ProfileData for the (possibly new) profile
        """
        async with self.get_session() as session:
            profile = await session.get(UserProfile, user_id)
            if profile is None:
                profile = await self._create_profile(session, user_id)
            elif self._backfill_stats(profile):
                logger.warning(f"Backfilled missing stats for profile {user_id}")
            return profile_to_data(profile)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def update_user_profile(
        self,
        user_id: str,
        patch: ProfilePatch,
        acting_user_id: Optional[str] = None
    ) -> ProfileData:
        """
        Merge user-editable fields into a profile, creating it if needed.

        Args:
            user_id: Profile to update
            patch: Fields to set; None fields are left unchanged
            acting_user_id: Authenticated caller, if known. Users may only
                write their own profile.

        Raises:
            PermissionDeniedError: If acting_user_id is not the profile owner
        """
        if acting_user_id is not None and acting_user_id != user_id:
            logger.warning(f"User {acting_user_id} attempted to update profile {user_id}")
            raise PermissionDeniedError(
                f"User {acting_user_id} may not write profile {user_id}",
                "Permission denied: You don't have access to update this profile."
            )

        async with self.get_session() as session:
            profile = await session.get(UserProfile, user_id)
            if profile is None:
                profile = await self._create_profile(session, user_id)
            else:
                self._backfill_stats(profile)

            for name, value in patch.to_values().items():
                setattr(profile, name, value)
            profile.last_active = utc_now()
            await session.flush()

            logger.info(f"Updated profile {user_id}: {sorted(patch.to_values())}")
            return profile_to_data(profile)

    async def update_problem_solved(self, user_id: str, problem_id: int, solve_time_seconds: float) -> bool:
        """
        Record a practice problem solve.

        Replays of an already-solved problem change nothing.

        Returns:
            True if the solve was recorded, False if it was already solved

        Raises:
            ProfileNotFoundError: If the profile does not exist
            ValidationError: If the solve time is negative
        """
        if solve_time_seconds < 0:
            raise ValidationError(
                f"Negative solve time {solve_time_seconds} for problem {problem_id}",
                "Solve time cannot be negative."
            )

        async with self.get_session() as session:
            profile = await session.get(UserProfile, user_id)
            if profile is None:
                raise ProfileNotFoundError(user_id)
            if self._backfill_stats(profile):
                await session.flush()

            solved = list(profile.solved_problems or [])
            if problem_id in solved:
                logger.debug(f"Problem {problem_id} already solved by {user_id}")
                return False

            solved.append(problem_id)
            count = len(solved)
            new_average = self._running_average(profile.average_solve_time, count, solve_time_seconds)

            # Guard on the count we read so a concurrent solve cannot be lost silently
            result = await session.execute(
                update(UserProfile)
                .where(UserProfile.id == user_id)
                .where(UserProfile.problems_solved == (profile.problems_solved or 0))
                .values(
                    solved_problems=solved,
                    problems_solved=count,
                    average_solve_time=new_average,
                    total_points=UserProfile.total_points + RewardConstants.PROBLEM_SOLVED_POINTS,
                    last_active=utc_now()
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise StorageError(
                    "update_problem_solved",
                    f"profile {user_id} changed concurrently, please retry"
                )

        logger.info(
            f"User {user_id} solved problem {problem_id} in {solve_time_seconds}s "
            f"(solved={count}, avg={new_average}s)"
        )
        return True

    async def apply_stats_increment(self, user_id: str, increment: StatsIncrement) -> None:
        """
        Apply counter deltas to a profile in one atomic statement.

        Raises:
            ProfileNotFoundError: If the profile does not exist
        """
        values = {
            name: getattr(UserProfile, name) + delta
            for name, delta in increment.nonzero().items()
        }
        values['last_active'] = utc_now()

        async with self.get_session() as session:
            result = await session.execute(
                update(UserProfile)
                .where(UserProfile.id == user_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ProfileNotFoundError(user_id)

        logger.info(f"Incremented stats for {user_id}: {increment.nonzero()}")

    async def touch_last_active(self, user_id: str) -> None:
        """Refresh a profile's last activity timestamp."""
        async with self.get_session() as session:
            result = await session.execute(
                update(UserProfile)
                .where(UserProfile.id == user_id)
                .values(last_active=utc_now())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ProfileNotFoundError(user_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _create_profile(self, session: AsyncSession, user_id: str, **overrides) -> UserProfile:
        """Insert a default profile, tolerating a concurrent insert of the same id."""
        profile = self._new_profile(user_id, **overrides)
        session.add(profile)
        try:
            await session.flush()
        except IntegrityError:
            await session.rollback()
            logger.info(f"Profile {user_id} was created concurrently, re-reading")
            profile = await session.get(UserProfile, user_id)
            if profile is None:
                raise StorageError("create profile", f"profile {user_id} vanished after conflict")
            return profile

        logger.info(f"Created profile {user_id}")
        return profile

    @staticmethod
    def _new_profile(user_id: str, **overrides) -> UserProfile:
        now = utc_now()
        fields = dict(
            id=user_id,
            display_name=ProfileDefaults.DISPLAY_NAME,
            handle=None,
            avatar_url=None,
            average_solve_time=None,
            solved_problems=[],
            rank=compute_rank(0),
            created_at=now,
            last_active=now,
            **STATS_DEFAULTS
        )
        fields.update(overrides)
        return UserProfile(**fields)

    @staticmethod
    def _backfill_stats(profile: UserProfile) -> bool:
        """Fill stats columns left NULL by partially-initialized rows. Returns True if anything changed."""
        changed = False
        if profile.solved_problems is None:
            profile.solved_problems = []
            changed = True
        for name, default in STATS_DEFAULTS.items():
            if getattr(profile, name) is None:
                setattr(profile, name, default)
                changed = True
        if profile.problems_solved != len(profile.solved_problems):
            profile.problems_solved = len(profile.solved_problems)
            changed = True
        expected_rank = compute_rank(profile.total_rank_points)
        if profile.rank != expected_rank:
            profile.rank = expected_rank
            changed = True
        return changed

    @staticmethod
    def _running_average(current_average: Optional[int], count: int, solve_time: float) -> int:
        """Incremental mean over `count` solves, rounded half-up to whole seconds."""
        if not current_average:
            new_average = solve_time
        else:
            new_average = (current_average * (count - 1) + solve_time) / count
        return math.floor(new_average + 0.5)
