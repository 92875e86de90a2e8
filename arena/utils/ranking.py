"""
Rank tier utilities shared by the rank service and leaderboards.

Tiers are derived solely from accumulated rank points; nothing else may set a
player's tier.
"""

from enum import Enum
from typing import List, Tuple

from arena.constants import RankConstants


class RankTier(Enum):
    """Rank tiers in ascending order."""
    UNRANKED = "Unranked"
    BRONZE = "Bronze"
    SILVER = "Silver"
    GOLD = "Gold"
    PLATINUM = "Platinum"
    DIAMOND = "Diamond"

    @property
    def order(self) -> int:
        return list(RankTier).index(self)


# Highest threshold first; the first threshold reached wins
TIER_THRESHOLDS: List[Tuple[int, RankTier]] = [
    (RankConstants.DIAMOND_THRESHOLD, RankTier.DIAMOND),
    (RankConstants.PLATINUM_THRESHOLD, RankTier.PLATINUM),
    (RankConstants.GOLD_THRESHOLD, RankTier.GOLD),
    (RankConstants.SILVER_THRESHOLD, RankTier.SILVER),
    (RankConstants.BRONZE_THRESHOLD, RankTier.BRONZE),
]


def tier_for_points(total_rank_points: int) -> RankTier:
    """
    Map accumulated rank points to a tier.

    Args:
        total_rank_points: Non-negative rank point total

    Returns:
        The tier implied by the points

    Raises:
        ValueError: If points are negative
    """
    if total_rank_points < 0:
        raise ValueError(f"Rank points cannot be negative: {total_rank_points}")

    for threshold, tier in TIER_THRESHOLDS:
        if total_rank_points >= threshold:
            return tier
    return RankTier.UNRANKED


def compute_rank(total_rank_points: int) -> str:
    """Tier name for the given rank points (e.g. 'Silver')."""
    return tier_for_points(total_rank_points).value
