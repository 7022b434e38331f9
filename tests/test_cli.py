"""
Smoke tests for the command line, run against a temporary database.
"""

import pytest

from reputation import cli, database, history


@pytest.fixture
def cli_db(db_path, monkeypatch):
    monkeypatch.setattr(database, "DATABASE_PATH", db_path)
    return db_path


def test_add_hotel_and_score_without_data(cli_db, capsys):
    cli.main(["add-hotel", "--name", "The Plaza", "--city", "New York"])
    hotel = database.list_hotels()[0]

    cli.main(["score", hotel.id])
    out = capsys.readouterr().out
    assert "The Plaza (New York)" in out
    assert "No review data yet." in out


def test_group_commands(cli_db, capsys):
    hotel = database.create_hotel("Aria", "Las Vegas")
    cli.main(["create-group", "Strip"])
    group = database.list_groups()[0]

    cli.main(["add-member", group.id, hotel.id])
    cli.main(["add-member", group.id, hotel.id])
    assert database.get_group(group.id).member_ids == [hotel.id]
    assert "already in this group" in capsys.readouterr().out


def test_unknown_hotel_exits(cli_db):
    with pytest.raises(SystemExit):
        cli.main(["score", "missing"])


def test_export_writes_csv(cli_db, tmp_path):
    database.create_hotel("Aria", "Las Vegas")
    output = tmp_path / "hotels.csv"
    cli.main(["export", "--output", str(output)])

    text = output.read_bytes().decode("utf-8-sig")
    assert text.startswith('"Hotel Name","City"')
    assert '"Aria","Las Vegas"' in text


def test_trend_requires_target():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["trend"])


def test_invalid_default_date_range_exits_cleanly(cli_db, monkeypatch):
    monkeypatch.setattr(history, "DEFAULT_DATE_RANGE", "1y")
    hotel = database.create_hotel("Aria", "Las Vegas")
    with pytest.raises(SystemExit) as exc:
        cli.main(["trend", "--hotel", hotel.id])
    assert "DEFAULT_DATE_RANGE" in str(exc.value.code)

    # An explicit range does not need the default
    cli.main(["trend", "--hotel", hotel.id, "--range", "7d"])


def test_add_hotel_rejects_bad_website(cli_db):
    with pytest.raises(SystemExit) as exc:
        cli.main(["add-hotel", "--name", "The Plaza", "--city", "New York", "--website", "not a url"])
    assert "valid website URL" in str(exc.value.code)
    assert database.list_hotels() == []
