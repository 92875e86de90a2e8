import random

import pytest

from arena.config import Config
from arena.database.database import Database
from arena.database.match_operations import MatchOperations
from arena.services.leaderboard import LeaderboardService
from arena.services.profile import ProfileService
from arena.services.profile_images import LocalBlobStore, ProfileImageService
from arena.services.rank import RankService
from arena.utils.redis_utils import PairingLock


@pytest.fixture(autouse=True)
def arena_config(monkeypatch, tmp_path):
    """Point every configurable path at the test's tmp dir and poll fast."""
    monkeypatch.setattr(Config, "DATABASE_URL", f"sqlite:///{tmp_path / 'arena.db'}")
    monkeypatch.setattr(Config, "BLOB_STORAGE_DIR", str(tmp_path / "blobs"))
    monkeypatch.setattr(Config, "MATCH_POLL_INTERVAL", 0.01)
    monkeypatch.setattr(Config, "REDIS_URL", None)
    return Config


@pytest.fixture
async def database(arena_config):
    db = Database()
    await db.initialize()
    yield db
    await db.close()


@pytest.fixture
def profiles(database):
    return ProfileService(database.session_factory)


@pytest.fixture
def ranks(database):
    return RankService(database.session_factory)


@pytest.fixture
def leaderboard(database):
    return LeaderboardService(database.session_factory)


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(str(tmp_path / "blobs"), "https://cdn.example.test/arena")


@pytest.fixture
def profile_images(profiles, blob_store):
    return ProfileImageService(profiles, blob_store)


@pytest.fixture
async def match_ops(database, profiles, ranks):
    ops = MatchOperations(database, profiles, ranks, PairingLock(), rng=random.Random(7))
    yield ops
    await ops.close_listeners()


@pytest.fixture
def paired(match_ops):
    """Queue two users and return (match_id, waiting_user, joining_user)."""
    async def pair(first="alice", second="bob"):
        assert await match_ops.join(first) == "waiting"
        match_id = await match_ops.join(second)
        return match_id, first, second
    return pair
