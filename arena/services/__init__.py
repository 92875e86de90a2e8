"""
Services package for the ranked arena.
"""

from .base import BaseService
from .leaderboard import LeaderboardService
from .profile import ProfileService
from .profile_images import BlobStore, LocalBlobStore, ProfileImageService
from .rank import RankService

__all__ = [
    'BaseService', 'LeaderboardService', 'ProfileService', 'RankService',
    'BlobStore', 'LocalBlobStore', 'ProfileImageService'
]
