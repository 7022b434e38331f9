"""
Unit tests for the score processor: normalization, weighting,
latest-per-key selection, hotel scores and group aggregates.
"""

import random
from datetime import datetime, timezone

import pytest

from reputation.models import Observation, ProviderRating, RatingReading
from reputation.processor import (
    build_group_aggregate, build_hotel_score, latest_per_key, normalize,
    round_score, to_reading, weighted_average, weighted_score,
)


def at(day, hour=12):
    return datetime(2026, 1, day, hour, tzinfo=timezone.utc)


# ============================================================
# Normalization
# ============================================================

def test_five_stars_is_exactly_ten():
    """A perfect 1-5 rating must be exactly 10.0, not 9.99."""
    assert normalize(5, "1-5") == 10.0


@pytest.mark.parametrize("raw, scale, expected", [
    (4.5, "1-5", 9.0),
    (1, "1-5", 2.0),
    (8.6, "0-10", 8.6),
    (10, "0-10", 10.0),
    (86, "0-10", 8.6),
    (86, "0-100", 8.6),
    (0, "0-10", 0.0),
])
def test_normalize_scales(raw, scale, expected):
    assert normalize(raw, scale) == pytest.approx(expected)


@pytest.mark.parametrize("scale, values", [
    ("1-5", [1, 1.5, 2.2, 3, 3.9, 4.4, 5]),
    ("0-10", [0, 0.5, 4, 7.3, 9.9, 10]),
    ("0-100", [0, 12, 55, 86, 100]),
])
def test_normalize_is_monotonic(scale, values):
    normalized = [normalize(v, scale) for v in values]
    assert normalized == sorted(normalized)
    assert all(0 <= n <= 10 for n in normalized)


def test_normalize_rejects_bad_input():
    with pytest.raises(ValueError):
        normalize(4.0, "1-7")
    with pytest.raises(ValueError):
        normalize(-1, "0-10")
    with pytest.raises(ValueError):
        normalize(5.5, "1-5")
    with pytest.raises(ValueError):
        normalize(101, "0-100")


def test_to_reading_without_rating_is_absent():
    """No rating from the provider means no reading at all, not a zero."""
    assert to_reading("h1", "google", ProviderRating(rating=None, review_count=0, scale=None)) is None
    assert to_reading("h1", "google", None) is None


def test_to_reading_uses_platform_default_scale():
    reading = to_reading("h1", "booking", ProviderRating(rating=8.6, review_count=2345, scale=None))
    assert reading.normalized_rating == pytest.approx(8.6)
    assert reading.raw_rating == 8.6

    reading = to_reading("h1", "tripadvisor", ProviderRating(rating=4.5, review_count=160, scale=None))
    assert reading.normalized_rating == 9.0


def test_to_reading_prefers_explicit_scale():
    reading = to_reading("h1", "expedia", ProviderRating(rating=4.4, review_count=50, scale="1-5"))
    assert reading.normalized_rating == pytest.approx(8.8)

    reading = to_reading("h1", "expedia", ProviderRating(rating=4.4, review_count=50, scale="0-10"))
    assert reading.normalized_rating == pytest.approx(4.4)


def test_reading_rejects_malformed_values():
    with pytest.raises(ValueError):
        RatingReading("h1", "google", 4.0, 8.0, -1)
    with pytest.raises(ValueError):
        RatingReading("h1", "google", 4.0, 10.5, 10)
    with pytest.raises(ValueError):
        RatingReading("h1", "myspace", 4.0, 8.0, 10)


# ============================================================
# Weighted average
# ============================================================

def test_weighted_score_worked_example():
    assert weighted_score([(9.0, 900), (8.0, 200), (8.5, 150)]) == 8.8


def test_weighted_average_keeps_full_precision():
    assert weighted_average([(9.0, 900), (8.0, 200), (8.5, 150)]) == pytest.approx(8.78)


def test_weighted_score_empty_or_zero_weight_is_none():
    assert weighted_score([]) is None
    assert weighted_score([(7.0, 0)]) is None
    assert weighted_score([(7.0, 0), (3.0, 0)]) is None
    assert weighted_average(iter([])) is None


def test_round_score_rounds_half_up():
    assert round_score(8.75) == 8.8
    assert round_score(8.25) == 8.3
    assert round_score(None) is None


# ============================================================
# Latest per key
# ============================================================

def test_latest_per_key_picks_greatest_timestamp(make_observation):
    observations = [
        make_observation(observed_at=at(1), rating=7.0),
        make_observation(observed_at=at(3), rating=9.0),
        make_observation(observed_at=at(2), rating=8.0),
    ]
    for _ in range(5):
        random.shuffle(observations)
        latest = latest_per_key(observations, lambda o: (o.hotel_id, o.platform))
        assert latest[("h1", "google")].observed_at == at(3)
        assert latest[("h1", "google")].normalized_rating == 9.0


def test_latest_per_key_tie_keeps_first_seen(make_observation):
    first = make_observation(rating=7.0)
    second = make_observation(rating=9.0)
    latest = latest_per_key([first, second], lambda o: o.platform)
    assert latest["google"] is first


# ============================================================
# Hotel score
# ============================================================

def test_hotel_score_uses_latest_per_platform(make_observation):
    observations = [
        make_observation(platform="google", rating=6.0, reviews=500, observed_at=at(1)),
        make_observation(platform="google", rating=9.0, reviews=900, observed_at=at(5)),
        make_observation(platform="tripadvisor", rating=8.0, reviews=200, observed_at=at(4)),
        make_observation(platform="booking", rating=8.5, reviews=150, observed_at=at(3)),
    ]
    score = build_hotel_score("h1", observations)

    assert [s.platform for s in score.per_platform] == ["google", "tripadvisor", "booking"]
    assert round_score(score.weighted_score) == 8.8
    assert score.total_reviews == 1250
    assert score.last_updated == at(5)


def test_zero_review_platform_is_excluded(make_observation):
    observations = [
        make_observation(platform="google", rating=9.0, reviews=100, observed_at=at(2)),
        make_observation(platform="expedia", rating=2.0, reviews=0, observed_at=at(9)),
    ]
    score = build_hotel_score("h1", observations)

    assert score.platform("expedia") is None
    assert score.weighted_score == 9.0
    # last_updated only looks at surviving platforms
    assert score.last_updated == at(2)


def test_hotel_without_data_is_not_zero(make_observation):
    score = build_hotel_score("h1", [make_observation(hotel_id="other")])
    assert score.weighted_score is None
    assert not score.has_data
    assert score.total_reviews == 0
    assert score.per_platform == []
    assert score.last_updated is None


def test_hotel_score_is_idempotent(make_observation):
    observations = (
        make_observation(platform="google", rating=9.0, reviews=900),
        make_observation(platform="booking", rating=8.5, reviews=150),
    )
    assert build_hotel_score("h1", observations) == build_hotel_score("h1", observations)


def test_observation_rejects_negative_review_count():
    with pytest.raises(ValueError):
        Observation("h1", "google", 4.0, 8.0, -5, at(1))


# ============================================================
# Group aggregate
# ============================================================

def test_group_aggregate_worked_example(make_observation):
    observations = [
        make_observation(hotel_id="e1", platform="google", rating=8.5, reviews=1000),
        make_observation(hotel_id="e2", platform="booking", rating=7.5, reviews=500),
    ]
    aggregate = build_group_aggregate(["e1", "e2"], observations)

    assert aggregate.weighted_score == pytest.approx(8.1667, abs=1e-4)
    assert round_score(aggregate.weighted_score) == 8.2
    assert aggregate.total_reviews == 1500


def test_group_per_platform_axis(make_observation):
    observations = [
        make_observation(hotel_id="e1", platform="google", rating=9.0, reviews=300, observed_at=at(2)),
        make_observation(hotel_id="e2", platform="google", rating=7.0, reviews=100, observed_at=at(4)),
        make_observation(hotel_id="e2", platform="booking", rating=8.0, reviews=50, observed_at=at(3)),
    ]
    aggregate = build_group_aggregate(["e1", "e2"], observations)

    google = aggregate.platform("google")
    assert google.rating == pytest.approx(8.5)
    assert google.review_count == 400
    assert google.observed_at == at(4)
    assert aggregate.platform("booking").rating == 8.0
    assert aggregate.platform("tripadvisor") is None


def test_group_excludes_hotels_without_data(make_observation):
    observations = [
        make_observation(hotel_id="e1", platform="google", rating=8.0, reviews=100),
        make_observation(hotel_id="e3", platform="google", rating=1.0, reviews=0),
    ]
    aggregate = build_group_aggregate(["e1", "e2", "e3"], observations)

    assert aggregate.weighted_score == 8.0
    assert aggregate.hotels_with_data == 1
    assert len(aggregate.hotel_scores) == 3
    assert aggregate.hotel_scores[1].weighted_score is None


def test_empty_group_has_no_score():
    aggregate = build_group_aggregate([], [])
    assert aggregate.weighted_score is None
    assert aggregate.per_platform == []
    assert aggregate.last_updated is None


def test_group_ignores_non_members(make_observation):
    observations = [
        make_observation(hotel_id="e1", rating=8.0, reviews=100),
        make_observation(hotel_id="outsider", rating=2.0, reviews=10000),
    ]
    assert build_group_aggregate(["e1"], observations).weighted_score == 8.0
