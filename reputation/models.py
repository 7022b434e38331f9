"""
Data models — the structure of our data.
Every rating, no matter which platform it comes from, gets converted into these shapes.

Stored facts (Observation, Hotel, HotelGroup) are what the database holds.
Derived views (PlatformScore, CompositeScore, GroupAggregate, TrendPoint) are
recomputed from the observation log on every query and never saved.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional


# ============================================================
# Platforms and their rating scales
# ============================================================

@dataclass(frozen=True)
class RatingScale:
    """How a native rating maps onto the 0-10 scale."""
    key: str                    # "1-5", "0-10", "0-100"
    max_value: float
    multiplier: float = 1.0
    divisor: float = 1.0


@dataclass(frozen=True)
class Platform:
    """One review platform. Adding a platform is adding an entry to PLATFORMS."""
    key: str                    # "google", "tripadvisor", "booking", "expedia"
    display_name: str
    default_scale: str
    site: Optional[str] = None  # domain used for "site:" searches (None = Google Maps)


SCALES = {
    "1-5": RatingScale("1-5", max_value=5, multiplier=2.0),
    "0-10": RatingScale("0-10", max_value=10),
    "0-100": RatingScale("0-100", max_value=100, divisor=10.0),
}

PLATFORMS = {
    "google": Platform("google", "Google", "1-5"),
    "tripadvisor": Platform("tripadvisor", "TripAdvisor", "1-5", site="tripadvisor.com"),
    "booking": Platform("booking", "Booking.com", "0-10", site="booking.com"),
    "expedia": Platform("expedia", "Expedia", "0-10", site="expedia.com"),
}

# Fixed display order for tables, cards and exports
PLATFORM_ORDER = ["google", "tripadvisor", "booking", "expedia"]


# ============================================================
# Stored records
# ============================================================

@dataclass
class Hotel:
    """A managed property."""
    id: str
    name: str
    city: str
    website_url: Optional[str] = None
    image_url: Optional[str] = None      # listing thumbnail, filled on first refresh
    created_at: Optional[str] = None


@dataclass
class HotelGroup:
    """A named set of hotels (a hotel may belong to many groups)."""
    id: str
    name: str
    created_at: Optional[str] = None
    member_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RatingReading:
    """
    One normalized platform rating, ready to be stored.
    It becomes an Observation once the database stamps it with fetched_at.
    """
    hotel_id: str
    platform: str
    raw_rating: float
    normalized_rating: float
    review_count: int

    def __post_init__(self):
        _validate_rating_fields(self.platform, self.raw_rating,
                                self.normalized_rating, self.review_count)


@dataclass(frozen=True)
class Observation:
    """
    A review snapshot: one immutable, timestamped rating for a hotel on a platform.
    normalized_rating is kept at full precision; rounding happens only for display.
    """
    hotel_id: str
    platform: str
    raw_rating: float
    normalized_rating: float
    review_count: int
    observed_at: datetime
    id: Optional[int] = None    # database row id (insertion order)

    def __post_init__(self):
        _validate_rating_fields(self.platform, self.raw_rating,
                                self.normalized_rating, self.review_count)


def _validate_rating_fields(platform: str, raw_rating: float,
                            normalized_rating: float, review_count: int) -> None:
    if platform not in PLATFORMS:
        raise ValueError(f"Unknown platform: {platform!r}")
    if raw_rating < 0:
        raise ValueError(f"Invalid raw rating: {raw_rating}. Must be >= 0")
    if not (0 <= normalized_rating <= 10):
        raise ValueError(f"Invalid normalized rating: {normalized_rating}. Must be 0-10")
    if review_count < 0:
        raise ValueError(f"Invalid review count: {review_count}. Must be >= 0")


# ============================================================
# Provider responses and ingestion results
# ============================================================

@dataclass
class ProviderRating:
    """What a platform lookup returns. rating is None when no rating could be read."""
    rating: Optional[float]
    review_count: int
    scale: Optional[str]        # explicit scale tag, e.g. "1-5"
    url: Optional[str] = None
    image_url: Optional[str] = None


@dataclass
class PlatformResult:
    """Outcome of fetching one platform for one hotel."""
    platform: str
    success: bool
    reading: Optional[RatingReading] = None
    error: Optional[str] = None
    image_url: Optional[str] = None


@dataclass
class RefreshResult:
    """Outcome of fetching all platforms for one hotel."""
    hotel_id: str
    results: dict[str, PlatformResult]
    saved_count: int = 0
    weighted_score: Optional[float] = None

    @property
    def succeeded(self) -> list[str]:
        return [p for p, r in self.results.items() if r.success]

    @property
    def failed(self) -> dict[str, str]:
        return {p: r.error or "Failed" for p, r in self.results.items() if not r.success}


@dataclass
class BulkRefreshResult:
    """Outcome of refreshing many hotels one after another."""
    total: int
    success_count: int = 0
    errors: list[str] = field(default_factory=list)
    results: list[RefreshResult] = field(default_factory=list)


# ============================================================
# Derived views
# ============================================================

@dataclass(frozen=True)
class PlatformScore:
    """Latest rating for one platform (for a hotel, or aggregated for a group)."""
    platform: str
    rating: float               # 0-10, full precision
    review_count: int
    raw_rating: Optional[float] = None
    observed_at: Optional[datetime] = None


@dataclass
class CompositeScore:
    """Cross-platform score for one hotel."""
    hotel_id: str
    per_platform: list[PlatformScore]
    weighted_score: Optional[float]     # None = no review data yet
    total_reviews: int
    last_updated: Optional[datetime]

    @property
    def has_data(self) -> bool:
        return self.weighted_score is not None

    def platform(self, key: str) -> Optional[PlatformScore]:
        for score in self.per_platform:
            if score.platform == key:
                return score
        return None


@dataclass
class GroupAggregate:
    """Combined score across all hotels of a group."""
    hotel_ids: list[str]
    hotel_scores: list[CompositeScore]
    per_platform: list[PlatformScore]
    weighted_score: Optional[float]
    total_reviews: int
    last_updated: Optional[datetime]

    @property
    def has_data(self) -> bool:
        return self.weighted_score is not None

    @property
    def hotels_with_data(self) -> int:
        return sum(1 for s in self.hotel_scores if s.has_data)

    def platform(self, key: str) -> Optional[PlatformScore]:
        for score in self.per_platform:
            if score.platform == key:
                return score
        return None


@dataclass(frozen=True)
class TrendPoint:
    """One calendar date in a historical series."""
    date: date
    score: Optional[float]      # weighted score for a hotel, aggregate score for a group
    total_reviews: int
    observation_count: int
