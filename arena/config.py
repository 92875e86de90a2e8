import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Ranked arena configuration settings"""

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///arena.db')

    # Runtime settings
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    LOG_DIR = os.getenv('LOG_DIR', 'logs')
    LOG_LEVEL = os.getenv('LOG_LEVEL')                                  # Console level name; defaults from DEBUG
    LOG_TO_FILE = os.getenv('LOG_TO_FILE', 'True').lower() == 'true'

    # Matchmaking settings
    MATCH_POLL_INTERVAL = float(os.getenv('MATCH_POLL_INTERVAL', 1.0))  # Seconds between listener polls
    PROBLEM_POOL_SIZE = int(os.getenv('PROBLEM_POOL_SIZE', 50))          # Problem ids are drawn from 1..N
    MATCH_DURATION_MINUTES = 10                                          # Match clock, enforced by gameplay

    # Redis settings (optional, enables the distributed pairing lock)
    REDIS_URL = os.getenv('REDIS_URL')
    PAIRING_LOCK_TIMEOUT = int(os.getenv('PAIRING_LOCK_TIMEOUT', 10))
    PAIRING_LOCK_BLOCKING_TIMEOUT = int(os.getenv('PAIRING_LOCK_BLOCKING_TIMEOUT', 5))

    # Profile image settings
    PROFILE_IMAGE_MAX_BYTES = 5 * 1024 * 1024  # 5MB
    BLOB_STORAGE_DIR = os.getenv('BLOB_STORAGE_DIR', 'blobs')
    BLOB_PUBLIC_BASE_URL = os.getenv('BLOB_PUBLIC_BASE_URL', '/blobs')

    @classmethod
    def get_async_database_url(cls) -> str:
        """Get the database URL rewritten for the async driver"""
        database_url = cls.DATABASE_URL
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')
        return database_url

    @classmethod
    def validate(cls):
        """Validate that configuration values are usable"""
        if not cls.DATABASE_URL:
            raise ValueError("DATABASE_URL is required")
        if cls.MATCH_POLL_INTERVAL <= 0:
            raise ValueError("MATCH_POLL_INTERVAL must be positive")
        if cls.PROBLEM_POOL_SIZE < 1:
            raise ValueError("PROBLEM_POOL_SIZE must be at least 1")
        if cls.PAIRING_LOCK_TIMEOUT <= 0 or cls.PAIRING_LOCK_BLOCKING_TIMEOUT <= 0:
            raise ValueError("Pairing lock timeouts must be positive")
