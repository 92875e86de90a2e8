"""
Redis utility module for centralized Redis configuration and connection logic.

Redis is optional: it only backs the distributed matchmaking pairing lock.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import LockError, RedisError

from arena.config import Config
from arena.constants import QueueConstants
from arena.utils.exceptions import StorageError

logger = logging.getLogger(__name__)


class RedisUtils:
    """Centralized Redis configuration and connection utilities."""

    @staticmethod
    def get_secure_redis_url() -> Optional[str]:
        """Get the configured Redis URL if it passes security validation."""
        redis_url = Config.REDIS_URL
        if not redis_url:
            logger.info("REDIS_URL not set; matchmaking pairing will run without a distributed lock")
            return None

        if RedisUtils._validate_redis_security(redis_url):
            return redis_url

        logger.error("REDIS_URL contains insecure configuration")
        return None

    @staticmethod
    def _validate_redis_security(redis_url: str) -> bool:
        """Validate that Redis URL meets security requirements."""
        if not redis_url:
            return False

        if not Config.DEBUG:
            # Production mode - enforce strict security
            if redis_url.startswith('redis://localhost') or redis_url.startswith('redis://127.0.0.1'):
                return True
            if not redis_url.startswith('rediss://'):
                logger.error("Production Redis must use rediss:// (TLS) protocol")
                return False
            if '@' not in redis_url:
                logger.error("Production Redis must include authentication credentials")
                return False
        elif not redis_url.startswith(('rediss://', 'redis://localhost', 'redis://127.0.0.1')):
            logger.warning(f"Potentially insecure Redis URL in development: {redis_url}")

        return True

    @staticmethod
    async def create_redis_client() -> Optional[redis.Redis]:
        """Create a Redis client with secure configuration, or None if unavailable."""
        redis_url = RedisUtils.get_secure_redis_url()
        if not redis_url:
            return None

        client = redis.from_url(redis_url)
        try:
            await client.ping()
        except RedisError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            await client.aclose()
            return None

        logger.info("Successfully connected to Redis")
        return client


class PairingLock:
    """
    Distributed lock around the matchmaking scan-then-pair critical section.

    Without a Redis client the lock is a no-op and pairing relies on the
    database's conditional claim alone.
    """

    def __init__(self, redis_client=None, name: str = QueueConstants.PAIRING_LOCK_NAME,
                 timeout: Optional[int] = None, blocking_timeout: Optional[int] = None):
        self.redis_client = redis_client
        self.name = name
        self.timeout = timeout or Config.PAIRING_LOCK_TIMEOUT
        self.blocking_timeout = blocking_timeout or Config.PAIRING_LOCK_BLOCKING_TIMEOUT

    @classmethod
    async def create(cls) -> 'PairingLock':
        """Build a lock from the configured Redis URL, disabled if Redis is unavailable."""
        return cls(await RedisUtils.create_redis_client())

    @property
    def enabled(self) -> bool:
        return self.redis_client is not None

    @asynccontextmanager
    async def hold(self):
        """Hold the pairing lock for the duration of the block."""
        if self.redis_client is None:
            yield
            return

        lock = self.redis_client.lock(
            self.name,
            timeout=self.timeout,
            blocking_timeout=self.blocking_timeout
        )
        try:
            acquired = await lock.acquire()
        except RedisError as e:
            raise StorageError("acquire pairing lock", str(e)) from e
        if not acquired:
            raise StorageError("acquire pairing lock", "matchmaking is busy, please try again")

        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as e:
                logger.warning(f"Pairing lock expired before release: {e}")

    async def close(self):
        if self.redis_client is not None:
            await self.redis_client.aclose()
            self.redis_client = None
