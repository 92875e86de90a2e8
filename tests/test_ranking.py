import pytest

from arena.utils.ranking import RankTier, compute_rank, tier_for_points


@pytest.mark.parametrize("points, expected", [
    (0, "Unranked"),
    (1, "Bronze"),
    (29, "Bronze"),
    (30, "Silver"),
    (59, "Silver"),
    (60, "Gold"),
    (79, "Gold"),
    (80, "Platinum"),
    (99, "Platinum"),
    (100, "Diamond"),
    (5000, "Diamond"),
])
def test_compute_rank_boundaries(points, expected):
    assert compute_rank(points) == expected


def test_tiers_never_drop_as_points_grow():
    orders = [tier_for_points(points).order for points in range(0, 150)]
    assert orders == sorted(orders)


def test_tier_order_is_ascending():
    assert RankTier.UNRANKED.order < RankTier.BRONZE.order < RankTier.DIAMOND.order


def test_negative_points_rejected():
    with pytest.raises(ValueError):
        tier_for_points(-1)
