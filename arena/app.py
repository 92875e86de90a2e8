from typing import Optional

from arena.config import Config
from arena.database.database import Database
from arena.database.match_operations import MatchOperations
from arena.services.leaderboard import LeaderboardService
from arena.services.profile import ProfileService
from arena.services.profile_images import BlobStore, LocalBlobStore, ProfileImageService
from arena.services.rank import RankService
from arena.utils.logger import setup_logger
from arena.utils.redis_utils import PairingLock


class ArenaApp:
    """Wires the database, services and matchmaking together for one process."""

    def __init__(self, database_url: Optional[str] = None, blob_store: Optional[BlobStore] = None,
                 pairing_lock: Optional[PairingLock] = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url
        self.blob_store = blob_store
        self.pairing_lock = pairing_lock

        self.db: Optional[Database] = None
        self.profiles: Optional[ProfileService] = None
        self.ranks: Optional[RankService] = None
        self.leaderboard: Optional[LeaderboardService] = None
        self.profile_images: Optional[ProfileImageService] = None
        self.matches: Optional[MatchOperations] = None

    async def initialize(self) -> 'ArenaApp':
        """Open the database and build every service"""
        self.logger.info("Setting up ranked arena...")
        Config.validate()

        self.db = Database(self.database_url)
        await self.db.initialize()

        self.profiles = ProfileService(self.db.session_factory)
        self.ranks = RankService(self.db.session_factory)
        self.leaderboard = LeaderboardService(self.db.session_factory)
        self.profile_images = ProfileImageService(self.profiles, self.blob_store or LocalBlobStore())

        if self.pairing_lock is None:
            self.pairing_lock = await PairingLock.create()
        if not self.pairing_lock.enabled:
            self.logger.info("Pairing lock disabled; relying on queue claims only")

        self.matches = MatchOperations(self.db, self.profiles, self.ranks, self.pairing_lock)

        self.logger.info("Ranked arena setup complete!")
        return self

    async def close(self):
        """Cleanup on shutdown"""
        self.logger.info("Shutting down ranked arena...")

        if self.matches:
            await self.matches.close_listeners()
        if self.pairing_lock:
            await self.pairing_lock.close()
        if self.db:
            await self.db.close()

    async def __aenter__(self) -> 'ArenaApp':
        return await self.initialize()

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
