"""
Profile data models for the ranked arena.

Provides immutable data transfer objects for profile reads, and the closed set
of patch types accepted by profile writes.
"""

from dataclasses import dataclass, fields
from typing import Dict, List, Optional
from datetime import datetime


@dataclass(frozen=True)
class ProfileStats:
    """Practice and ranked stats for a user."""
    problems_solved: int
    current_streak: int
    best_streak: int
    average_solve_time: Optional[int]  # Seconds
    total_points: int
    total_rank_points: int
    rank_wins: int
    rank_matches: int
    rank: str  # Tier name, derived from total_rank_points


@dataclass(frozen=True)
class ProfileData:
    """Complete profile data for a user."""
    user_id: str
    display_name: str
    handle: Optional[str]
    avatar_url: Optional[str]
    stats: ProfileStats
    solved_problems: List[int]
    created_at: Optional[datetime]
    last_active: Optional[datetime]


@dataclass(frozen=True)
class ProfilePatch:
    """User-editable profile fields. None means 'leave unchanged'."""
    display_name: Optional[str] = None
    handle: Optional[str] = None
    avatar_url: Optional[str] = None

    def to_values(self) -> Dict[str, str]:
        """Column values for the fields that are set"""
        return {
            field.name: getattr(self, field.name)
            for field in fields(self)
            if getattr(self, field.name) is not None
        }

    @property
    def is_empty(self) -> bool:
        return not self.to_values()


@dataclass(frozen=True)
class StatsIncrement:
    """Counter deltas applied as one atomic increment."""
    total_points: int = 0
    total_rank_points: int = 0
    rank_wins: int = 0
    rank_matches: int = 0

    def __post_init__(self):
        # Counters only ever grow
        for field in fields(self):
            if getattr(self, field.name) < 0:
                raise ValueError(f"{field.name} increment cannot be negative")

    def nonzero(self) -> Dict[str, int]:
        return {
            field.name: getattr(self, field.name)
            for field in fields(self)
            if getattr(self, field.name)
        }
