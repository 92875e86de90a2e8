"""
Arena-wide constants for the ranked matchmaking library.

This module contains the reward schedule, rank thresholds and profile defaults
used throughout the codebase.
"""

class RewardConstants:
    """Points awarded by match resolution and problem solving."""

    # Ranked match winner
    WIN_RANK_POINTS = 1
    WIN_TOTAL_POINTS = 25

    # Ranked match loser (consolation for participating)
    LOSS_TOTAL_POINTS = 5

    # Practice problem solved for the first time
    PROBLEM_SOLVED_POINTS = 10

class RankConstants:
    """Rank point thresholds, highest first. A tier applies at or above its threshold."""

    DIAMOND_THRESHOLD = 100
    PLATINUM_THRESHOLD = 80
    GOLD_THRESHOLD = 60
    SILVER_THRESHOLD = 30
    BRONZE_THRESHOLD = 1

class ProfileDefaults:
    """Defaults for newly materialized profiles."""

    DISPLAY_NAME = "New User"
    LEADERBOARD_NAME = "Anonymous"  # Shown when a profile has a blank name

class QueueConstants:
    """Matchmaking queue values."""

    # Returned by join() when no opponent was available
    WAITING = "waiting"

    # Redis key guarding the pairing critical section
    PAIRING_LOCK_NAME = "arena:matchmaking:pairing"

class LeaderboardConstants:
    """Leaderboard query limits."""

    DEFAULT_LIMIT = 10
    MAX_LIMIT = 100
