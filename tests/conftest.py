"""
Shared fixtures: a throwaway SQLite database and an observation factory.
"""

from datetime import datetime, timezone

import pytest

from reputation.database import initialize_database
from reputation.models import Observation


@pytest.fixture
def db_path(tmp_path):
    """Fresh database file per test."""
    path = str(tmp_path / "reputation.db")
    initialize_database(path)
    return path


@pytest.fixture
def make_observation():
    """Build an Observation with sensible defaults; override any field."""
    counter = {"id": 0}

    def _make(hotel_id="h1", platform="google", rating=8.0, reviews=100,
              observed_at=None, raw_rating=None):
        counter["id"] += 1
        return Observation(
            hotel_id=hotel_id,
            platform=platform,
            raw_rating=rating if raw_rating is None else raw_rating,
            normalized_rating=rating,
            review_count=reviews,
            observed_at=observed_at or datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc),
            id=counter["id"],
        )

    return _make
