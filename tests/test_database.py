"""
Tests for the SQLite layer: hotels, groups, CSV import rows and the
append-only snapshot log.
"""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from reputation.database import (
    add_group_member, create_group, create_hotel, delete_group, delete_hotel,
    get_group, get_hotel, get_last_fetched, get_observations, import_hotels,
    initialize_database, insert_observations, list_groups, list_hotels,
    normalize_website_url, parse_hotel_rows, remove_group_member, set_group_members,
    set_hotel_image, update_hotel,
)
from reputation.models import RatingReading


def _reading(hotel_id, platform="google", raw=4.5, normalized=9.0, reviews=100):
    return RatingReading(hotel_id, platform, raw, normalized, reviews)


def test_initialize_is_idempotent(db_path):
    initialize_database(db_path)
    assert list_hotels(db_path=db_path) == []


# ============================================================
# Hotels
# ============================================================

def test_create_and_get_hotel(db_path):
    hotel = create_hotel("  The Plaza ", "New York", db_path=db_path)
    assert hotel.name == "The Plaza"
    assert hotel.website_url is None
    assert get_hotel(hotel.id, db_path=db_path) == hotel


def test_create_hotel_requires_name_and_city(db_path):
    with pytest.raises(ValueError):
        create_hotel("", "Paris", db_path=db_path)
    with pytest.raises(ValueError):
        create_hotel("Le Meurice", "   ", db_path=db_path)


def test_update_hotel(db_path):
    hotel = create_hotel("Plaza", "New York", db_path=db_path)
    updated = update_hotel(hotel.id, "The Plaza", "New York", "https://plaza.example",
                           db_path=db_path)
    assert updated.name == "The Plaza"
    assert updated.website_url == "https://plaza.example"

    with pytest.raises(ValueError):
        update_hotel("missing", "A hotel", "Rome", db_path=db_path)


def test_website_gets_a_scheme(db_path):
    assert normalize_website_url("plaza.example") == "https://plaza.example"
    assert normalize_website_url(" plaza.example/rooms ") == "https://plaza.example/rooms"
    assert normalize_website_url("http://plaza.example") == "http://plaza.example"
    assert normalize_website_url("   ") is None
    assert normalize_website_url(None) is None

    hotel = create_hotel("The Plaza", "New York", "plaza.example", db_path=db_path)
    assert get_hotel(hotel.id, db_path=db_path).website_url == "https://plaza.example"
    updated = update_hotel(hotel.id, "The Plaza", "New York", "www.theplaza.example",
                           db_path=db_path)
    assert updated.website_url == "https://www.theplaza.example"


def test_invalid_website_is_rejected(db_path):
    with pytest.raises(ValueError, match="valid website URL"):
        normalize_website_url("not a url")
    with pytest.raises(ValueError):
        create_hotel("The Plaza", "New York", "plaza", db_path=db_path)
    assert list_hotels(db_path=db_path) == []

    hotel = create_hotel("The Plaza", "New York", db_path=db_path)
    with pytest.raises(ValueError):
        update_hotel(hotel.id, "The Plaza", "New York", "ftp://plaza.example", db_path=db_path)


def test_hotel_image_is_set_once(db_path):
    hotel = create_hotel("The Plaza", "New York", db_path=db_path)
    assert hotel.image_url is None

    assert set_hotel_image(hotel.id, "https://img.example/a.jpg", db_path=db_path)
    assert not set_hotel_image(hotel.id, "https://img.example/b.jpg", db_path=db_path)
    assert get_hotel(hotel.id, db_path=db_path).image_url == "https://img.example/a.jpg"


def test_initialize_adds_image_column_to_old_files(tmp_path):
    path = str(tmp_path / "old.db")
    conn = sqlite3.connect(path)
    conn.execute("""
        CREATE TABLE hotels (
            id TEXT PRIMARY KEY, name TEXT NOT NULL, city TEXT NOT NULL,
            website_url TEXT, created_at TEXT NOT NULL
        )
    """)
    conn.execute("INSERT INTO hotels VALUES ('h1', 'The Plaza', 'New York', NULL, '2025-01-01')")
    conn.commit()
    conn.close()

    initialize_database(path)
    hotel = get_hotel("h1", db_path=path)
    assert hotel.name == "The Plaza"
    assert hotel.image_url is None


def test_delete_hotel_removes_snapshots_and_memberships(db_path):
    hotel = create_hotel("The Plaza", "New York", db_path=db_path)
    group = create_group("NYC", db_path=db_path)
    add_group_member(group.id, hotel.id, db_path=db_path)
    insert_observations([_reading(hotel.id), _reading(hotel.id, "booking", 8.6, 8.6)],
                        db_path=db_path)

    assert delete_hotel(hotel.id, db_path=db_path) == 2
    assert get_hotel(hotel.id, db_path=db_path) is None
    assert get_observations([hotel.id], db_path=db_path) == []
    assert get_group(group.id, db_path=db_path).member_ids == []


def test_list_hotels_by_ids(db_path):
    a = create_hotel("Aria", "Las Vegas", db_path=db_path)
    create_hotel("Bellagio", "Las Vegas", db_path=db_path)
    assert [h.id for h in list_hotels([a.id], db_path=db_path)] == [a.id]
    assert list_hotels([], db_path=db_path) == []
    assert len(list_hotels(db_path=db_path)) == 2


# ============================================================
# CSV import
# ============================================================

def test_parse_hotel_rows_accepts_header_variants():
    rows = [
        {"Hotel Name": "The Plaza", "City": "New York"},
        {"name": "Aria", "city": "Las Vegas", "website_url": "https://aria.example"},
    ]
    assert parse_hotel_rows(rows) == [
        {"name": "The Plaza", "city": "New York", "website_url": None},
        {"name": "Aria", "city": "Las Vegas", "website_url": "https://aria.example"},
    ]


def test_parse_hotel_rows_skips_junk():
    rows = [
        {"name": "", "city": "Paris"},
        {"name": "Ritz", "city": ""},
        {"name": "12", "city": "Paris"},
        {"name": "Ritz", "city": "75001"},
        {"name": "AB", "city": "Paris"},
        {"name": "Ritz", "city": "P"},
        {"name": "Ritz", "city": "Paris"},
    ]
    assert [r["name"] for r in parse_hotel_rows(rows)] == ["Ritz"]


def test_import_hotels(db_path):
    created, errors = import_hotels(
        [{"name": "Ritz", "city": "Paris"}, {"name": "Total", "city": "3"}],
        db_path=db_path,
    )
    assert [h.name for h in created] == ["Ritz"]
    assert errors == []


# ============================================================
# Groups
# ============================================================

def test_group_membership(db_path):
    a = create_hotel("Aria", "Las Vegas", db_path=db_path)
    b = create_hotel("Bellagio", "Las Vegas", db_path=db_path)
    group = create_group("Strip", db_path=db_path)

    assert add_group_member(group.id, a.id, db_path=db_path) is True
    assert add_group_member(group.id, a.id, db_path=db_path) is False
    add_group_member(group.id, b.id, db_path=db_path)
    assert get_group(group.id, db_path=db_path).member_ids == [a.id, b.id]

    remove_group_member(group.id, a.id, db_path=db_path)
    assert get_group(group.id, db_path=db_path).member_ids == [b.id]

    set_group_members(group.id, [a.id, a.id], db_path=db_path)
    assert get_group(group.id, db_path=db_path).member_ids == [a.id]


def test_hotel_can_be_in_many_groups(db_path):
    hotel = create_hotel("Aria", "Las Vegas", db_path=db_path)
    g1 = create_group("Strip", db_path=db_path)
    g2 = create_group("Portfolio", db_path=db_path)
    add_group_member(g1.id, hotel.id, db_path=db_path)
    add_group_member(g2.id, hotel.id, db_path=db_path)

    groups = {g.name: g.member_ids for g in list_groups(db_path=db_path)}
    assert groups == {"Strip": [hotel.id], "Portfolio": [hotel.id]}


def test_delete_group_keeps_hotels(db_path):
    hotel = create_hotel("Aria", "Las Vegas", db_path=db_path)
    group = create_group("Strip", db_path=db_path)
    add_group_member(group.id, hotel.id, db_path=db_path)

    delete_group(group.id, db_path=db_path)
    assert get_group(group.id, db_path=db_path) is None
    assert get_hotel(hotel.id, db_path=db_path) is not None


# ============================================================
# Snapshots
# ============================================================

def test_insert_observations_shares_timestamp(db_path):
    hotel = create_hotel("Aria", "Las Vegas", db_path=db_path)
    fetched_at = datetime(2026, 1, 15, 12, tzinfo=timezone.utc)
    stored = insert_observations(
        [_reading(hotel.id), _reading(hotel.id, "booking", 8.6, 8.6, 2000)],
        fetched_at=fetched_at, db_path=db_path,
    )

    assert [o.observed_at for o in stored] == [fetched_at, fetched_at]
    assert get_observations([hotel.id], db_path=db_path) == stored


def test_insert_nothing(db_path):
    assert insert_observations([], db_path=db_path) == []


def test_snapshots_are_append_only(db_path):
    hotel = create_hotel("Aria", "Las Vegas", db_path=db_path)
    insert_observations([_reading(hotel.id)], db_path=db_path)

    conn = sqlite3.connect(db_path)
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute("UPDATE review_snapshots SET rating = 1.0")
    conn.close()


def test_database_rejects_out_of_range_rating(db_path):
    hotel = create_hotel("Aria", "Las Vegas", db_path=db_path)
    conn = sqlite3.connect(db_path)
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute(
            "INSERT INTO review_snapshots (hotel_id, platform, rating, original_rating, "
            "review_count, fetched_at) VALUES (?, 'google', 11, 5, 10, '2026-01-01T00:00:00+00:00')",
            (hotel.id,),
        )
    conn.close()


def test_get_observations_filters(db_path):
    a = create_hotel("Aria", "Las Vegas", db_path=db_path)
    b = create_hotel("Bellagio", "Las Vegas", db_path=db_path)
    t0 = datetime(2026, 1, 10, tzinfo=timezone.utc)
    insert_observations([_reading(a.id), _reading(b.id)], fetched_at=t0, db_path=db_path)
    insert_observations([_reading(a.id, "booking", 8.0, 8.0)],
                        fetched_at=t0 + timedelta(days=5), db_path=db_path)

    assert len(get_observations(db_path=db_path)) == 3
    assert len(get_observations([a.id], db_path=db_path)) == 2
    assert len(get_observations([a.id], platform="booking", db_path=db_path)) == 1
    assert len(get_observations(since=t0 + timedelta(days=1), db_path=db_path)) == 1
    assert get_observations([], db_path=db_path) == []
    assert get_last_fetched(a.id, db_path=db_path) == t0 + timedelta(days=5)
    assert get_last_fetched("missing", db_path=db_path) is None


def test_observations_come_back_oldest_first(db_path):
    hotel = create_hotel("Aria", "Las Vegas", db_path=db_path)
    late = datetime(2026, 1, 20, tzinfo=timezone.utc)
    early = datetime(2026, 1, 5, tzinfo=timezone.utc)
    insert_observations([_reading(hotel.id)], fetched_at=late, db_path=db_path)
    insert_observations([_reading(hotel.id, "booking", 8.0, 8.0)], fetched_at=early, db_path=db_path)

    assert [o.observed_at for o in get_observations(db_path=db_path)] == [early, late]
