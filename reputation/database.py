"""
Database layer — the storage backbone of the reputation dashboard.

Uses SQLite: a file-based database built into Python.
One database file holds hotels, groups and the review snapshot log.

Key rule — the snapshot log is append-only:
    Every fetch inserts new review_snapshots rows. Rows are never updated,
    so concurrent inserts for different platforms never conflict, and the
    full rating history can always be rebuilt from the log.
    A trigger makes SQLite itself refuse any UPDATE on the table.
"""

import os
import re
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional

from dateutil.parser import isoparse

from reputation.config import DATABASE_PATH
from reputation.models import PLATFORMS, Hotel, HotelGroup, Observation, RatingReading


def _get_db_path(db_path: Optional[str] = None) -> str:
    path = db_path or DATABASE_PATH
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    return path


def _get_connection(db_path: Optional[str] = None) -> sqlite3.Connection:
    """
    Open a connection to the database.
    Rows come back as sqlite3.Row so they can be read like dictionaries,
    and foreign keys are switched on so deleting a hotel removes its memberships.
    """
    conn = sqlite3.connect(_get_db_path(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def initialize_database(db_path: Optional[str] = None) -> None:
    """
    Creates all tables. Safe to call multiple times —
    'IF NOT EXISTS' means it won't crash if the tables already exist.
    """
    conn = _get_connection(db_path)
    cursor = conn.cursor()

    # ---- Table 1: hotels ----
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS hotels (
            id          TEXT PRIMARY KEY,
            name        TEXT NOT NULL CHECK (length(trim(name)) > 0),
            city        TEXT NOT NULL CHECK (length(trim(city)) > 0),
            website_url TEXT,
            image_url   TEXT,
            created_at  TEXT NOT NULL
        )
    """)
    # Older database files predate the thumbnail column
    if "image_url" not in _column_names(cursor, "hotels"):
        cursor.execute("ALTER TABLE hotels ADD COLUMN image_url TEXT")

    # ---- Table 2: hotel_groups ----
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS hotel_groups (
            id          TEXT PRIMARY KEY,
            name        TEXT NOT NULL CHECK (length(trim(name)) > 0),
            created_at  TEXT NOT NULL
        )
    """)

    # ---- Table 3: hotel_group_members ----
    # Many-to-many: a hotel can sit in several groups
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS hotel_group_members (
            hotel_id    TEXT NOT NULL REFERENCES hotels(id) ON DELETE CASCADE,
            group_id    TEXT NOT NULL REFERENCES hotel_groups(id) ON DELETE CASCADE,
            created_at  TEXT NOT NULL,
            PRIMARY KEY (hotel_id, group_id)
        )
    """)

    # ---- Table 4: review_snapshots ----
    # One row per (hotel, platform, fetch). rating is normalized 0-10,
    # original_rating is what the platform showed.
    platforms = ", ".join(f"'{p}'" for p in PLATFORMS)
    cursor.execute(f"""
        CREATE TABLE IF NOT EXISTS review_snapshots (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            hotel_id        TEXT NOT NULL REFERENCES hotels(id) ON DELETE CASCADE,
            platform        TEXT NOT NULL CHECK (platform IN ({platforms})),
            rating          REAL NOT NULL CHECK (rating >= 0 AND rating <= 10),
            original_rating REAL NOT NULL CHECK (original_rating >= 0),
            review_count    INTEGER NOT NULL DEFAULT 0 CHECK (review_count >= 0),
            fetched_at      TEXT NOT NULL
        )
    """)
    cursor.execute("""
        CREATE TRIGGER IF NOT EXISTS review_snapshots_append_only
        BEFORE UPDATE ON review_snapshots
        BEGIN
            SELECT RAISE(ABORT, 'review_snapshots is append-only');
        END
    """)

    cursor.execute("CREATE INDEX IF NOT EXISTS idx_snapshots_hotel ON review_snapshots(hotel_id)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_snapshots_hotel_platform "
                   "ON review_snapshots(hotel_id, platform)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_snapshots_fetched_at ON review_snapshots(fetched_at)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_members_group ON hotel_group_members(group_id)")

    conn.commit()
    conn.close()

    print(f"Database ready: {_get_db_path(db_path)}")


def _table_exists(cursor, table_name: str) -> bool:
    """Check if a table exists in the database."""
    cursor.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
        (table_name,)
    )
    return cursor.fetchone() is not None


def _column_names(cursor, table_name: str) -> set:
    cursor.execute(f"PRAGMA table_info({table_name})")
    return {row["name"] for row in cursor.fetchall()}


# ============================================================
# Hotels
# ============================================================

def _row_to_hotel(row) -> Hotel:
    return Hotel(id=row["id"], name=row["name"], city=row["city"],
                 website_url=row["website_url"], image_url=row["image_url"],
                 created_at=row["created_at"])


_URL_PATTERN = re.compile(r"^(https?://)?[\da-z.-]+\.[a-z.]{2,6}[/\w .-]*$", re.IGNORECASE)
_SCHEME = re.compile(r"^https?://", re.IGNORECASE)


def normalize_website_url(website_url: Optional[str]) -> Optional[str]:
    """
    Validate a hotel website and make sure it has a scheme.
    "plaza.example/rooms" -> "https://plaza.example/rooms"; blank -> None.
    Raises ValueError for anything that does not look like a web address.
    """
    website_url = (website_url or "").strip()
    if not website_url:
        return None
    if not _URL_PATTERN.match(website_url):
        raise ValueError(f"Please enter a valid website URL: {website_url}")
    if not _SCHEME.match(website_url):
        website_url = f"https://{website_url}"
    return website_url


def create_hotel(name: str, city: str, website_url: Optional[str] = None,
                 db_path: Optional[str] = None) -> Hotel:
    """Add a hotel. Name and city are required; the website is optional."""
    name, city = (name or "").strip(), (city or "").strip()
    if not name or not city:
        raise ValueError("Hotel name and city are required")

    hotel = Hotel(id=str(uuid.uuid4()), name=name, city=city,
                  website_url=normalize_website_url(website_url), created_at=_now_iso())
    conn = _get_connection(db_path)
    conn.execute(
        "INSERT INTO hotels (id, name, city, website_url, created_at) VALUES (?, ?, ?, ?, ?)",
        (hotel.id, hotel.name, hotel.city, hotel.website_url, hotel.created_at)
    )
    conn.commit()
    conn.close()
    return hotel


def update_hotel(hotel_id: str, name: str, city: str, website_url: Optional[str] = None,
                 db_path: Optional[str] = None) -> Hotel:
    """Edit a hotel's details. Its review history is untouched."""
    name, city = (name or "").strip(), (city or "").strip()
    if not name or not city:
        raise ValueError("Hotel name and city are required")
    website_url = normalize_website_url(website_url)

    conn = _get_connection(db_path)
    cursor = conn.cursor()
    cursor.execute(
        "UPDATE hotels SET name = ?, city = ?, website_url = ? WHERE id = ?",
        (name, city, website_url, hotel_id)
    )
    updated = cursor.rowcount
    conn.commit()
    conn.close()
    if not updated:
        raise ValueError(f"Hotel not found: {hotel_id}")
    return get_hotel(hotel_id, db_path=db_path)


def set_hotel_image(hotel_id: str, image_url: str, db_path: Optional[str] = None) -> bool:
    """
    Store a thumbnail for a hotel that has none yet.
    Returns False when the hotel already had an image (it is kept).
    """
    conn = _get_connection(db_path)
    cursor = conn.cursor()
    cursor.execute("UPDATE hotels SET image_url = ? WHERE id = ? AND image_url IS NULL",
                   (image_url, hotel_id))
    updated = cursor.rowcount > 0
    conn.commit()
    conn.close()
    return updated


def delete_hotel(hotel_id: str, db_path: Optional[str] = None) -> int:
    """
    Delete a hotel together with its memberships and snapshots.
    Returns the number of snapshots that were deleted.
    """
    conn = _get_connection(db_path)
    cursor = conn.cursor()
    cursor.execute("SELECT COUNT(*) FROM review_snapshots WHERE hotel_id = ?", (hotel_id,))
    snapshot_count = cursor.fetchone()[0]
    cursor.execute("DELETE FROM hotels WHERE id = ?", (hotel_id,))
    conn.commit()
    conn.close()
    return snapshot_count


def get_hotel(hotel_id: str, db_path: Optional[str] = None) -> Optional[Hotel]:
    conn = _get_connection(db_path)
    row = conn.execute("SELECT * FROM hotels WHERE id = ?", (hotel_id,)).fetchone()
    conn.close()
    return _row_to_hotel(row) if row else None


def list_hotels(hotel_ids: Optional[Iterable[str]] = None,
                db_path: Optional[str] = None) -> list[Hotel]:
    """All hotels (or the given ones), newest first."""
    conn = _get_connection(db_path)
    cursor = conn.cursor()
    if not _table_exists(cursor, "hotels"):
        conn.close()
        return []

    if hotel_ids is None:
        cursor.execute("SELECT * FROM hotels ORDER BY created_at DESC")
    else:
        ids = list(hotel_ids)
        if not ids:
            conn.close()
            return []
        placeholders = ", ".join("?" for _ in ids)
        cursor.execute(
            f"SELECT * FROM hotels WHERE id IN ({placeholders}) ORDER BY name ASC", ids
        )
    hotels = [_row_to_hotel(row) for row in cursor.fetchall()]
    conn.close()
    return hotels


def _is_number(value: str) -> bool:
    try:
        float(value)
        return True
    except ValueError:
        return False


def parse_hotel_rows(rows: Iterable[dict]) -> list[dict]:
    """
    Clean rows read from an uploaded CSV.

    Accepts 'name' or 'hotel name' for the name column and 'city' for the city
    (headers are matched case-insensitively). Rows with an empty or numeric
    name or city are skipped — they are usually totals or stray index columns.
    """
    cleaned = []
    for raw in rows:
        row = {str(k).strip().lower(): (str(v).strip() if v is not None else "")
               for k, v in raw.items() if k is not None}
        name = row.get("name") or row.get("hotel name") or ""
        city = row.get("city") or ""
        if not name or not city or _is_number(name) or _is_number(city):
            continue
        if len(name) <= 2 or len(city) <= 1:
            continue
        cleaned.append({"name": name, "city": city,
                        "website_url": row.get("website_url") or None})
    return cleaned


def import_hotels(rows: Iterable[dict], db_path: Optional[str] = None) -> tuple[list[Hotel], list[str]]:
    """
    Bulk-create hotels from CSV rows.
    Returns (created hotels, error messages for rows that failed).
    """
    created, errors = [], []
    for i, row in enumerate(parse_hotel_rows(rows), 1):
        try:
            created.append(create_hotel(row["name"], row["city"], row["website_url"],
                                        db_path=db_path))
        except (ValueError, sqlite3.Error) as e:
            errors.append(f"Row {i} ({row['name']}): {e}")

    print(f"Imported {len(created)} hotels ({len(errors)} failed)")
    return created, errors


# ============================================================
# Groups
# ============================================================

def create_group(name: str, db_path: Optional[str] = None) -> HotelGroup:
    name = (name or "").strip()
    if not name:
        raise ValueError("Group name is required")

    group = HotelGroup(id=str(uuid.uuid4()), name=name, created_at=_now_iso())
    conn = _get_connection(db_path)
    conn.execute("INSERT INTO hotel_groups (id, name, created_at) VALUES (?, ?, ?)",
                 (group.id, group.name, group.created_at))
    conn.commit()
    conn.close()
    return group


def rename_group(group_id: str, name: str, db_path: Optional[str] = None) -> None:
    name = (name or "").strip()
    if not name:
        raise ValueError("Group name is required")
    conn = _get_connection(db_path)
    conn.execute("UPDATE hotel_groups SET name = ? WHERE id = ?", (name, group_id))
    conn.commit()
    conn.close()


def delete_group(group_id: str, db_path: Optional[str] = None) -> None:
    """Delete a group. Its hotels and their snapshots stay."""
    conn = _get_connection(db_path)
    conn.execute("DELETE FROM hotel_groups WHERE id = ?", (group_id,))
    conn.commit()
    conn.close()


def get_group(group_id: str, db_path: Optional[str] = None) -> Optional[HotelGroup]:
    conn = _get_connection(db_path)
    row = conn.execute("SELECT * FROM hotel_groups WHERE id = ?", (group_id,)).fetchone()
    conn.close()
    if not row:
        return None
    return HotelGroup(id=row["id"], name=row["name"], created_at=row["created_at"],
                      member_ids=get_group_member_ids(group_id, db_path=db_path))


def list_groups(db_path: Optional[str] = None) -> list[HotelGroup]:
    """All groups with their member ids, newest first."""
    conn = _get_connection(db_path)
    cursor = conn.cursor()
    if not _table_exists(cursor, "hotel_groups"):
        conn.close()
        return []

    cursor.execute("SELECT * FROM hotel_groups ORDER BY created_at DESC")
    groups = [HotelGroup(id=row["id"], name=row["name"], created_at=row["created_at"])
              for row in cursor.fetchall()]
    cursor.execute("SELECT group_id, hotel_id FROM hotel_group_members ORDER BY created_at ASC")
    members = {}
    for row in cursor.fetchall():
        members.setdefault(row["group_id"], []).append(row["hotel_id"])
    conn.close()

    for group in groups:
        group.member_ids = members.get(group.id, [])
    return groups


def get_group_member_ids(group_id: str, db_path: Optional[str] = None) -> list[str]:
    conn = _get_connection(db_path)
    rows = conn.execute(
        "SELECT hotel_id FROM hotel_group_members WHERE group_id = ? ORDER BY created_at ASC",
        (group_id,)
    ).fetchall()
    conn.close()
    return [row["hotel_id"] for row in rows]


def add_group_member(group_id: str, hotel_id: str, db_path: Optional[str] = None) -> bool:
    """Add a hotel to a group. Returns False if it was already a member."""
    conn = _get_connection(db_path)
    cursor = conn.cursor()
    cursor.execute(
        "INSERT OR IGNORE INTO hotel_group_members (hotel_id, group_id, created_at) VALUES (?, ?, ?)",
        (hotel_id, group_id, _now_iso())
    )
    added = cursor.rowcount > 0
    conn.commit()
    conn.close()
    return added


def remove_group_member(group_id: str, hotel_id: str, db_path: Optional[str] = None) -> None:
    conn = _get_connection(db_path)
    conn.execute("DELETE FROM hotel_group_members WHERE group_id = ? AND hotel_id = ?",
                 (group_id, hotel_id))
    conn.commit()
    conn.close()


def set_group_members(group_id: str, hotel_ids: Iterable[str],
                      db_path: Optional[str] = None) -> None:
    """Replace a group's membership with exactly these hotels."""
    hotel_ids = list(dict.fromkeys(hotel_ids))
    conn = _get_connection(db_path)
    cursor = conn.cursor()
    cursor.execute("DELETE FROM hotel_group_members WHERE group_id = ?", (group_id,))
    now = _now_iso()
    for hotel_id in hotel_ids:
        cursor.execute(
            "INSERT INTO hotel_group_members (hotel_id, group_id, created_at) VALUES (?, ?, ?)",
            (hotel_id, group_id, now)
        )
    conn.commit()
    conn.close()


# ============================================================
# Review snapshots (append-only)
# ============================================================

def insert_observations(readings: Iterable[RatingReading],
                        fetched_at: Optional[datetime] = None,
                        db_path: Optional[str] = None) -> list[Observation]:
    """
    Save a batch of readings as new snapshots, all stamped with the same
    server-side fetched_at. Partial batches (some platforms missing) are fine.

    Only ever INSERTs. Returns the stored observations.
    """
    readings = list(readings)
    if not readings:
        return []

    fetched_at = fetched_at or datetime.now(timezone.utc)
    conn = _get_connection(db_path)
    cursor = conn.cursor()

    stored = []
    for reading in readings:
        cursor.execute("""
            INSERT INTO review_snapshots
            (hotel_id, platform, rating, original_rating, review_count, fetched_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            reading.hotel_id,
            reading.platform,
            reading.normalized_rating,
            reading.raw_rating,
            reading.review_count,
            fetched_at.isoformat(),
        ))
        stored.append(Observation(
            hotel_id=reading.hotel_id,
            platform=reading.platform,
            raw_rating=reading.raw_rating,
            normalized_rating=reading.normalized_rating,
            review_count=reading.review_count,
            observed_at=fetched_at,
            id=cursor.lastrowid,
        ))

    conn.commit()
    conn.close()
    return stored


def _row_to_observation(row) -> Observation:
    return Observation(
        hotel_id=row["hotel_id"],
        platform=row["platform"],
        raw_rating=row["original_rating"],
        normalized_rating=row["rating"],
        review_count=row["review_count"],
        observed_at=isoparse(row["fetched_at"]),
        id=row["id"],
    )


def get_observations(hotel_ids: Optional[Iterable[str]] = None,
                     platform: Optional[str] = None,
                     since: Optional[datetime] = None,
                     db_path: Optional[str] = None) -> list[Observation]:
    """
    Read snapshots, oldest first (ties in insertion order).

    Args:
        hotel_ids: Only these hotels (None = all hotels).
        platform:  Only this platform.
        since:     Only snapshots fetched at or after this moment.
    """
    conn = _get_connection(db_path)
    cursor = conn.cursor()
    if not _table_exists(cursor, "review_snapshots"):
        conn.close()
        return []

    clauses, params = [], []
    if hotel_ids is not None:
        ids = list(hotel_ids)
        if not ids:
            conn.close()
            return []
        clauses.append(f"hotel_id IN ({', '.join('?' for _ in ids)})")
        params.extend(ids)
    if platform:
        clauses.append("platform = ?")
        params.append(platform)

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    cursor.execute(f"SELECT * FROM review_snapshots {where} ORDER BY id ASC", params)
    observations = [_row_to_observation(row) for row in cursor.fetchall()]
    conn.close()

    # fetched_at strings may carry different UTC offsets, so compare parsed values
    if since is not None:
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        observations = [o for o in observations if o.observed_at >= since]
    observations.sort(key=lambda o: o.observed_at)
    return observations


def get_last_fetched(hotel_id: str, db_path: Optional[str] = None) -> Optional[datetime]:
    """When this hotel was last fetched (any platform), or None if never."""
    observations = get_observations([hotel_id], db_path=db_path)
    return observations[-1].observed_at if observations else None
