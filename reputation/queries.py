"""
Queries — what the dashboard, CLI and exports ask for.

Each query loads the relevant observations from the snapshot log and hands
them to the pure processor/history functions. Nothing computed here is stored.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from reputation.database import (
    get_group, get_hotel, get_observations, list_groups,
)
from reputation.history import build_platform_history, build_trend, filter_by_range
from reputation.models import CompositeScore, GroupAggregate, HotelGroup, Observation, TrendPoint
from reputation.processor import build_group_aggregate, build_hotel_score


@dataclass
class GroupOverview:
    """A group card: the group, how many hotels it has, and its headline score."""
    group: HotelGroup
    member_count: int
    aggregate: GroupAggregate


def _require_hotel(hotel_id: str, db_path: Optional[str]):
    hotel = get_hotel(hotel_id, db_path=db_path)
    if hotel is None:
        raise ValueError(f"Hotel not found: {hotel_id}")
    return hotel


def _require_group(group_id: str, db_path: Optional[str]) -> HotelGroup:
    group = get_group(group_id, db_path=db_path)
    if group is None:
        raise ValueError(f"Group not found: {group_id}")
    return group


def get_hotel_score(hotel_id: str, db_path: Optional[str] = None) -> CompositeScore:
    """Current composite score for a hotel, from all of its snapshots."""
    _require_hotel(hotel_id, db_path)
    observations = get_observations([hotel_id], db_path=db_path)
    return build_hotel_score(hotel_id, observations)


def get_hotel_scores(hotel_ids: list[str], db_path: Optional[str] = None) -> dict[str, CompositeScore]:
    """Composite scores for several hotels, loaded in one query."""
    observations = get_observations(hotel_ids, db_path=db_path)
    aggregate = build_group_aggregate(hotel_ids, observations)
    return {score.hotel_id: score for score in aggregate.hotel_scores}


def get_group_score(group_id: str, db_path: Optional[str] = None) -> GroupAggregate:
    """Current aggregate for a group."""
    group = _require_group(group_id, db_path)
    observations = get_observations(group.member_ids, db_path=db_path)
    return build_group_aggregate(group.member_ids, observations)


def get_hotel_trend(hotel_id: str, date_range: str = "all",
                    now: Optional[datetime] = None,
                    db_path: Optional[str] = None) -> list[TrendPoint]:
    """Daily weighted-score series for one hotel."""
    _require_hotel(hotel_id, db_path)
    observations = get_observations([hotel_id], db_path=db_path)
    return build_trend(observations, hotel_ids=[hotel_id], date_range=date_range, now=now)


def get_group_trend(group_id: str, date_range: str = "all",
                    now: Optional[datetime] = None,
                    db_path: Optional[str] = None) -> list[TrendPoint]:
    """Daily aggregate-score series across all hotels of a group."""
    group = _require_group(group_id, db_path)
    observations = get_observations(group.member_ids, db_path=db_path)
    return build_trend(observations, hotel_ids=group.member_ids,
                       date_range=date_range, now=now)


def get_hotel_platform_history(hotel_id: str, date_range: str = "all",
                               now: Optional[datetime] = None,
                               db_path: Optional[str] = None) -> list[dict]:
    """Per-platform daily ratings for one hotel (for the platform chart)."""
    _require_hotel(hotel_id, db_path)
    observations = get_observations([hotel_id], db_path=db_path)
    return build_platform_history(observations, hotel_id, date_range=date_range, now=now)


def get_hotel_history(hotel_id: str, date_range: str = "all",
                      now: Optional[datetime] = None,
                      db_path: Optional[str] = None) -> list[Observation]:
    """A hotel's snapshots inside a date range, oldest first (for the history table)."""
    _require_hotel(hotel_id, db_path)
    observations = get_observations([hotel_id], db_path=db_path)
    return filter_by_range(observations, date_range, now)


def list_group_overviews(db_path: Optional[str] = None) -> list[GroupOverview]:
    """Every group with its member count and current aggregate."""
    groups = list_groups(db_path=db_path)
    all_ids = sorted({h for g in groups for h in g.member_ids})
    observations = get_observations(all_ids, db_path=db_path)

    return [
        GroupOverview(
            group=group,
            member_count=len(group.member_ids),
            aggregate=build_group_aggregate(group.member_ids, observations),
        )
        for group in groups
    ]
