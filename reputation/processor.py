"""
Score processor — the math behind every number on the dashboard.

Takes observations from the snapshot log and turns them into comparable 0-10
scores for a hotel or a whole group.

Key design decisions:
    1. Everything here is a pure function over an immutable list of observations.
       No caches, no I/O, safe to run per hotel in any order.
    2. One weighted-average function. Hotels, groups and trend points all call it.
    3. "No data" is None, never 0.0. A 0.0 would look like a terrible hotel.
    4. Ratings keep full precision; rounding to one decimal is for display only.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Hashable, Iterable, Optional

from reputation.models import (
    PLATFORMS, PLATFORM_ORDER, SCALES,
    CompositeScore, GroupAggregate, Observation, PlatformScore,
    ProviderRating, RatingReading,
)

# ============================================================
# PART 1: Scale normalization
# ============================================================

def normalize(raw_rating: float, scale: str) -> float:
    """
    Convert a platform-native rating to the 0-10 scale.

    1-5 ratings are doubled (4.5 -> 9.0, 5 -> exactly 10.0).
    0-10 ratings pass through, except values above 10 which are read as
    a 0-100 representation and divided by 10.
    0-100 ratings are divided by 10.

    Raises ValueError for unknown scales, negative values and values above
    what the scale allows.
    """
    rule = SCALES.get(scale)
    if rule is None:
        raise ValueError(f"Unknown rating scale: {scale!r}")
    if raw_rating < 0:
        raise ValueError(f"Invalid rating {raw_rating}: must be >= 0")

    if rule.key == "0-10" and raw_rating > rule.max_value:
        rule = SCALES["0-100"]
    if raw_rating > rule.max_value:
        raise ValueError(f"Invalid rating {raw_rating} for scale {scale}")

    return raw_rating * rule.multiplier / rule.divisor


def to_reading(hotel_id: str, platform: str,
               provider_rating: ProviderRating) -> Optional[RatingReading]:
    """
    Turn a provider response into a storable reading.
    Returns None when the provider could not determine a rating: no reading
    is produced rather than a zero-rated one.
    """
    if provider_rating is None or provider_rating.rating is None:
        return None
    scale = provider_rating.scale or PLATFORMS[platform].default_scale
    return RatingReading(
        hotel_id=hotel_id,
        platform=platform,
        raw_rating=provider_rating.rating,
        normalized_rating=normalize(provider_rating.rating, scale),
        review_count=provider_rating.review_count,
    )


def round_score(value: Optional[float]) -> Optional[float]:
    """Round half-up to one decimal for display (8.75 -> 8.8). None stays None."""
    if value is None:
        return None
    return float(Decimal(repr(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


# ============================================================
# PART 2: Weighted average
# ============================================================

def weighted_average(pairs: Iterable[tuple[float, float]]) -> Optional[float]:
    """
    sum(rating * weight) / sum(weight), full precision.

    The weight is always a review count: more reviews, more influence.
    Returns None when there are no pairs or the total weight is zero.
    """
    total_weight = 0
    weighted_sum = 0.0
    for rating, weight in pairs:
        total_weight += weight
        weighted_sum += rating * weight

    if total_weight == 0:
        return None
    return weighted_sum / total_weight


def weighted_score(pairs: Iterable[tuple[float, float]]) -> Optional[float]:
    """
    Weighted average rounded to one decimal for presentation.

    e.g. [(9.0, 900), (8.0, 200), (8.5, 150)]
         = (8100 + 1600 + 1275) / 1250 = 8.78 -> 8.8
    """
    return round_score(weighted_average(pairs))


# ============================================================
# PART 3: Latest observation per key
# ============================================================

def latest_per_key(observations: Iterable[Observation],
                   key_fn: Callable[[Observation], Hashable]) -> dict:
    """
    Single pass: keep the observation with the greatest observed_at per key.

    Ties on observed_at keep the observation seen first, so with the
    database's insertion-ordered results the earliest inserted one wins.
    """
    latest = {}
    for obs in observations:
        key = key_fn(obs)
        current = latest.get(key)
        if current is None or obs.observed_at > current.observed_at:
            latest[key] = obs
    return latest


def _by_hotel_platform(obs: Observation) -> tuple[str, str]:
    return obs.hotel_id, obs.platform


# ============================================================
# PART 4: Hotel and group scores
# ============================================================

def _composite_from_latest(hotel_id: str, latest: Iterable[Observation]) -> CompositeScore:
    """
    Build a hotel's composite score from its latest observation per platform.
    Platforms with zero reviews carry no weight and are left out entirely.
    """
    surviving = sorted(
        (obs for obs in latest if obs.review_count > 0),
        key=lambda o: PLATFORM_ORDER.index(o.platform),
    )

    per_platform = [
        PlatformScore(
            platform=obs.platform,
            rating=obs.normalized_rating,
            review_count=obs.review_count,
            raw_rating=obs.raw_rating,
            observed_at=obs.observed_at,
        )
        for obs in surviving
    ]

    return CompositeScore(
        hotel_id=hotel_id,
        per_platform=per_platform,
        weighted_score=weighted_average((s.rating, s.review_count) for s in per_platform),
        total_reviews=sum(s.review_count for s in per_platform),
        last_updated=max((obs.observed_at for obs in surviving), default=None),
    )


def build_hotel_score(hotel_id: str, observations: Iterable[Observation]) -> CompositeScore:
    """
    Current composite score for one hotel.

    Observations for other hotels are ignored, so the full log can be passed.
    A hotel with no surviving platform data gets weighted_score=None and
    total_reviews=0: "no review data yet", not an error.
    """
    own = (obs for obs in observations if obs.hotel_id == hotel_id)
    latest = latest_per_key(own, lambda obs: obs.platform)
    return _composite_from_latest(hotel_id, latest.values())


def build_group_aggregate(hotel_ids: Iterable[str],
                          observations: Iterable[Observation]) -> GroupAggregate:
    """
    Current aggregate for a group of hotels.

    Two axes:
      - per platform: every hotel's surviving score on that platform,
        weighted by review count
      - overall: every hotel's weighted score, weighted by its total reviews

    Hotels without any surviving data are left out of the overall
    denominator instead of counting as zero-weight contributors.
    """
    hotel_ids = list(dict.fromkeys(hotel_ids))
    members = set(hotel_ids)

    latest = latest_per_key(
        (obs for obs in observations if obs.hotel_id in members),
        _by_hotel_platform,
    )
    latest_by_hotel = {hotel_id: [] for hotel_id in hotel_ids}
    for (hotel_id, _platform), obs in latest.items():
        latest_by_hotel[hotel_id].append(obs)

    hotel_scores = [_composite_from_latest(h, latest_by_hotel[h]) for h in hotel_ids]

    per_platform = []
    for platform in PLATFORM_ORDER:
        scores = [s.platform(platform) for s in hotel_scores]
        scores = [s for s in scores if s is not None]
        rating = weighted_average((s.rating, s.review_count) for s in scores)
        if rating is None:
            continue
        per_platform.append(PlatformScore(
            platform=platform,
            rating=rating,
            review_count=sum(s.review_count for s in scores),
            observed_at=max(s.observed_at for s in scores),
        ))

    with_data = [s for s in hotel_scores if s.has_data]

    return GroupAggregate(
        hotel_ids=hotel_ids,
        hotel_scores=hotel_scores,
        per_platform=per_platform,
        weighted_score=weighted_average((s.weighted_score, s.total_reviews) for s in with_data),
        total_reviews=sum(s.total_reviews for s in with_data),
        last_updated=max((s.last_updated for s in with_data), default=None),
    )
