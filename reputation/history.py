"""
Historical series — how scores moved over time.

Turns the snapshot log into a chronologically ordered, one-point-per-day
series. The series is rebuilt from the full log on every call, so it always
matches what is stored.

Date-range presets ("last 30 days" etc.) only choose which observations go
in. Bucketing is the same code path for every range.
"""

from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional

from dateutil import tz

from reputation.config import DEFAULT_DATE_RANGE, REFERENCE_TIMEZONE
from reputation.models import PLATFORM_ORDER, Observation, TrendPoint
from reputation.processor import latest_per_key, weighted_average

DATE_RANGES = {
    "7d": 7,
    "30d": 30,
    "90d": 90,
    "all": None,
}

DATE_RANGE_LABELS = {
    "7d": "Last 7 days",
    "30d": "Last 30 days",
    "90d": "Last 90 days",
    "all": "All time",
}


def default_date_range() -> str:
    """The configured DEFAULT_DATE_RANGE, checked against the known presets."""
    if DEFAULT_DATE_RANGE not in DATE_RANGES:
        raise ValueError(f"Invalid DEFAULT_DATE_RANGE: {DEFAULT_DATE_RANGE!r}. "
                         f"Expected one of {', '.join(DATE_RANGES)}")
    return DEFAULT_DATE_RANGE


def reference_tz():
    """The timezone whose calendar dates define a trend bucket."""
    zone = tz.gettz(REFERENCE_TIMEZONE)
    if zone is None:
        raise ValueError(f"Unknown REFERENCE_TIMEZONE: {REFERENCE_TIMEZONE!r}")
    return zone


def observation_date(obs: Observation, zone=None) -> date:
    """Calendar date of an observation. Naive timestamps are read as UTC."""
    observed_at = obs.observed_at
    if observed_at.tzinfo is None:
        observed_at = observed_at.replace(tzinfo=timezone.utc)
    return observed_at.astimezone(zone or reference_tz()).date()


def range_start(date_range: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Earliest timestamp included by a date-range preset.
    Returns None for "all". Raises ValueError for unknown presets.
    """
    if date_range not in DATE_RANGES:
        raise ValueError(f"Unknown date range: {date_range!r}. "
                         f"Expected one of {', '.join(DATE_RANGES)}")
    days = DATE_RANGES[date_range]
    if days is None:
        return None
    now = now or datetime.now(timezone.utc)
    return now - timedelta(days=days)


def filter_by_range(observations: Iterable[Observation], date_range: str = "all",
                    now: Optional[datetime] = None) -> list[Observation]:
    """Keep the observations that fall inside a date-range preset."""
    start = range_start(date_range, now)
    if start is None:
        return list(observations)
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    return [obs for obs in observations if _aware(obs.observed_at) >= start]


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def bucket_by_date(observations: Iterable[Observation],
                   zone=None) -> dict[date, list[Observation]]:
    """
    Group observations by calendar date, oldest date first.
    Observations keep their input order inside a bucket.
    """
    zone = zone or reference_tz()
    buckets = defaultdict(list)
    for obs in observations:
        buckets[observation_date(obs, zone)].append(obs)
    return {day: buckets[day] for day in sorted(buckets)}


def build_trend(observations: Iterable[Observation],
                hotel_ids: Optional[Iterable[str]] = None,
                date_range: str = "all",
                now: Optional[datetime] = None,
                zone=None) -> list[TrendPoint]:
    """
    One TrendPoint per calendar date present in the (filtered) observations.

    Args:
        hotel_ids:  Scope. One id for a hotel trend, the member ids for a
                    group trend, None for every observation passed in.
        date_range: "7d", "30d", "90d" or "all". Applied before bucketing.

    Each point is the review-count-weighted average of every observation in
    that day's bucket. A day whose observations all have zero reviews gets
    score=None.
    """
    if hotel_ids is not None:
        scope = set(hotel_ids)
        observations = (obs for obs in observations if obs.hotel_id in scope)

    selected = filter_by_range(observations, date_range, now)

    points = []
    for day, bucket in bucket_by_date(selected, zone).items():
        points.append(TrendPoint(
            date=day,
            score=weighted_average((o.normalized_rating, o.review_count) for o in bucket),
            total_reviews=sum(o.review_count for o in bucket),
            observation_count=len(bucket),
        ))
    return points


def build_platform_history(observations: Iterable[Observation],
                           hotel_id: str,
                           date_range: str = "all",
                           now: Optional[datetime] = None,
                           zone=None) -> list[dict]:
    """
    Per-platform history for one hotel: one row per date with the latest
    normalized rating each platform reported that day (None if it did not).

    e.g. [{"date": date(2026, 1, 15), "google": 9.0, "tripadvisor": None, ...}]
    """
    own = [obs for obs in observations if obs.hotel_id == hotel_id]
    selected = filter_by_range(own, date_range, now)

    rows = []
    for day, bucket in bucket_by_date(selected, zone).items():
        latest = latest_per_key(bucket, lambda obs: obs.platform)
        row = {"date": day}
        for platform in PLATFORM_ORDER:
            obs = latest.get(platform)
            row[platform] = obs.normalized_rating if obs is not None else None
        rows.append(row)
    return rows
