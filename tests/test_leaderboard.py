import pytest

from arena.data_models.leaderboard import LeaderboardCategory
from arena.data_models.profile import ProfilePatch, StatsIncrement
from arena.utils.exceptions import ProfileNotFoundError


@pytest.fixture
async def ranked_users(profiles):
    users = {
        "alice": StatsIncrement(total_points=50, total_rank_points=3),
        "bob": StatsIncrement(total_points=80, total_rank_points=1),
        "carol": StatsIncrement(total_points=50, total_rank_points=7),
        "dave": StatsIncrement(),
    }
    for user_id, increment in users.items():
        await profiles.get_user_profile(user_id)
        if increment.nonzero():
            await profiles.apply_stats_increment(user_id, increment)
    return users


async def test_global_leaderboard_orders_by_total_points(leaderboard, ranked_users):
    page = await leaderboard.get_leaderboard("global", limit=10)

    assert page.category == LeaderboardCategory.GLOBAL
    assert [entry.user_id for entry in page.entries] == ["bob", "alice", "carol", "dave"]
    assert [entry.position for entry in page.entries] == [1, 2, 3, 4]
    assert page.entries[0].stats.total_points == 80


async def test_rank_points_leaderboard(leaderboard, ranked_users):
    page = await leaderboard.get_leaderboard(LeaderboardCategory.RANK_POINTS, limit=2)

    assert [entry.user_id for entry in page.entries] == ["carol", "alice"]
    assert page.limit == 2


async def test_blank_names_show_as_anonymous(leaderboard, profiles, ranked_users):
    await profiles.update_user_profile("bob", ProfilePatch(display_name="   "))

    page = await leaderboard.get_leaderboard()

    names = {entry.user_id: entry.name for entry in page.entries}
    assert names["bob"] == "Anonymous"
    assert names["alice"] == "New User"


@pytest.mark.parametrize("limit", [0, 101, -3])
async def test_limit_must_be_in_range(leaderboard, limit):
    with pytest.raises(ValueError):
        await leaderboard.get_leaderboard(limit=limit)


async def test_unknown_category_rejected(leaderboard):
    with pytest.raises(ValueError):
        await leaderboard.get_leaderboard("weekly")


async def test_user_rank_position(leaderboard, ranked_users):
    assert await leaderboard.get_user_rank_position("bob") == 1
    # alice and carol tie on total points and share a position
    assert await leaderboard.get_user_rank_position("alice") == 2
    assert await leaderboard.get_user_rank_position("carol") == 2
    assert await leaderboard.get_user_rank_position("dave") == 4
    assert await leaderboard.get_user_rank_position("carol", "rankPoints") == 1


async def test_rank_position_requires_profile(leaderboard):
    with pytest.raises(ProfileNotFoundError):
        await leaderboard.get_user_rank_position("ghost")
