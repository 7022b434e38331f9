"""
CSV export — tables of current scores and rating history.

Every table is built as a pandas DataFrame of display strings:
numbers have exactly one decimal, anything missing is "-" (never "0.0").
Group tables end with a synthetic "[GROUP AGGREGATE]" row computed with the
same math as the group score card and the trend chart.
"""

import csv
import re
from datetime import date, datetime
from typing import Iterable, Optional

import pandas as pd

from reputation.history import bucket_by_date, build_trend, reference_tz
from reputation.models import (
    PLATFORM_ORDER, PLATFORMS, CompositeScore, GroupAggregate, Hotel, Observation,
)
from reputation.processor import round_score

AGGREGATE_LABEL = "[GROUP AGGREGATE]"
MISSING = "-"

HISTORY_COLUMNS = ["Hotel Name", "City", "Date", "Platform",
                   "Rating (0-10)", "Original Rating", "Review Count"]


def format_rating(value: Optional[float]) -> str:
    if value is None:
        return MISSING
    return f"{round_score(value):.1f}"


def format_count(value: Optional[int]) -> str:
    return MISSING if value is None else str(value)


def format_timestamp(value: Optional[datetime]) -> str:
    """Timestamp in the reference timezone, e.g. "2026-02-05 14:30"."""
    if value is None:
        return MISSING
    return value.astimezone(reference_tz()).strftime("%Y-%m-%d %H:%M")


def _platform_columns(score) -> dict:
    """'Google Rating', 'Google Reviews', ... for a CompositeScore or GroupAggregate."""
    columns = {}
    for key in PLATFORM_ORDER:
        name = PLATFORMS[key].display_name.replace(".com", "")
        platform_score = score.platform(key) if score is not None else None
        columns[f"{name} Rating"] = format_rating(platform_score.rating if platform_score else None)
        columns[f"{name} Reviews"] = format_count(platform_score.review_count if platform_score else None)
    return columns


def _score_row(name: str, city: str, score) -> dict:
    row = {"Hotel Name": name, "City": city}
    row.update(_platform_columns(score))
    row["Weighted Score"] = format_rating(score.weighted_score if score else None)
    row["Last Updated"] = format_timestamp(score.last_updated if score else None)
    return row


# ============================================================
# Current scores
# ============================================================

def hotel_table(hotels: Iterable[Hotel], scores: dict[str, CompositeScore]) -> pd.DataFrame:
    """One row per hotel with its latest rating and review count per platform."""
    rows = [_score_row(h.name, h.city, scores.get(h.id)) for h in hotels]
    if not rows:
        return pd.DataFrame(columns=list(_score_row("", "", None)))
    return pd.DataFrame(rows)


def group_table(group_name: str, hotels: Iterable[Hotel],
                aggregate: GroupAggregate) -> pd.DataFrame:
    """Hotel rows for a group plus one "[GROUP AGGREGATE] <group>" row."""
    scores = {s.hotel_id: s for s in aggregate.hotel_scores}
    rows = [_score_row(h.name, h.city, scores.get(h.id)) for h in hotels]
    rows.append(_score_row(f"{AGGREGATE_LABEL} {group_name}", MISSING, aggregate))
    return pd.DataFrame(rows)


# ============================================================
# History
# ============================================================

def _history_row(hotel: Hotel, day: date, obs: Observation) -> dict:
    return {
        "Hotel Name": hotel.name,
        "City": hotel.city,
        "Date": day.isoformat(),
        "Platform": PLATFORMS[obs.platform].display_name,
        "Rating (0-10)": format_rating(obs.normalized_rating),
        "Original Rating": format_rating(obs.raw_rating),
        "Review Count": format_count(obs.review_count),
    }


def hotel_history_table(hotel: Hotel, observations: Iterable[Observation]) -> pd.DataFrame:
    """Every snapshot for one hotel, oldest first."""
    zone = reference_tz()
    rows = []
    for day, bucket in bucket_by_date((o for o in observations if o.hotel_id == hotel.id), zone).items():
        rows.extend(_history_row(hotel, day, obs) for obs in bucket)
    return pd.DataFrame(rows, columns=HISTORY_COLUMNS)


def group_history_table(group_name: str, hotels: Iterable[Hotel],
                        observations: Iterable[Observation]) -> pd.DataFrame:
    """
    Every snapshot of every member hotel, one block per date, each block
    followed by an aggregate row with that day's group score.
    """
    by_id = {h.id: h for h in hotels}
    observations = [o for o in observations if o.hotel_id in by_id]
    zone = reference_tz()
    trend = {point.date: point for point in build_trend(observations, zone=zone)}

    rows = []
    for day, bucket in bucket_by_date(observations, zone).items():
        for obs in bucket:
            row = {"Group Name": group_name}
            row.update(_history_row(by_id[obs.hotel_id], day, obs))
            rows.append(row)

        point = trend[day]
        rows.append({
            "Group Name": group_name,
            "Hotel Name": AGGREGATE_LABEL,
            "City": "",
            "Date": day.isoformat(),
            "Platform": "All Platforms",
            "Rating (0-10)": format_rating(point.score),
            "Original Rating": "",
            "Review Count": format_count(point.total_reviews),
        })

    return pd.DataFrame(rows, columns=["Group Name"] + HISTORY_COLUMNS)


# ============================================================
# CSV output
# ============================================================

def to_csv(table: pd.DataFrame) -> str:
    """CSV text with every field quoted."""
    return table.to_csv(index=False, quoting=csv.QUOTE_ALL, lineterminator="\r\n")


def to_csv_bytes(table: pd.DataFrame) -> bytes:
    """CSV as UTF-8 with a BOM so Excel opens accents correctly."""
    return to_csv(table).encode("utf-8-sig")


def sanitize_filename(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "_", name, flags=re.IGNORECASE)


def generate_filename(prefix: str, today: Optional[date] = None, extension: str = "csv") -> str:
    """e.g. generate_filename("NYC Portfolio") -> "NYC_Portfolio-2026-02-05.csv" """
    today = today or datetime.now(reference_tz()).date()
    return f"{sanitize_filename(prefix)}-{today.isoformat()}.{extension}"
