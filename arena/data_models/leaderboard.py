"""
Leaderboard data models for the ranked arena.

Provides immutable data transfer objects for leaderboard queries.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from arena.data_models.profile import ProfileStats


class LeaderboardCategory(Enum):
    """Which points a leaderboard is ordered by."""
    GLOBAL = "global"            # Total points from practice and matches
    RANK_POINTS = "rankPoints"   # Ranked match points


@dataclass(frozen=True)
class LeaderboardEntry:
    """Single leaderboard row."""
    position: int
    user_id: str
    name: str
    handle: Optional[str]
    avatar_url: Optional[str]
    stats: ProfileStats


@dataclass(frozen=True)
class LeaderboardPage:
    """Top-N leaderboard data."""
    entries: List[LeaderboardEntry]
    category: LeaderboardCategory
    limit: int
