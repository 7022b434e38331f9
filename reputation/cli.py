"""
Command line for the reputation dashboard.

Everything the dashboard does, from a terminal: handy for cron-driven refreshes
and one-off exports.
"""

import argparse
import sys

import pandas as pd

from reputation import config
from reputation.database import (
    add_group_member, create_group, create_hotel, get_group, get_hotel,
    get_observations, import_hotels, initialize_database, list_groups, list_hotels,
)
from reputation.export import (
    generate_filename, group_history_table, group_table, hotel_history_table,
    hotel_table, to_csv_bytes,
)
from reputation.history import DATE_RANGES, default_date_range
from reputation.ingestion import refresh_hotel, refresh_hotels
from reputation.models import PLATFORMS
from reputation.processor import round_score
from reputation.queries import (
    get_group_score, get_group_trend, get_hotel_score, get_hotel_scores, get_hotel_trend,
)


def _show(value) -> str:
    rounded = round_score(value)
    return "-" if rounded is None else f"{rounded:.1f}"


def _print_score(title: str, score) -> None:
    print("=" * 60)
    print(title)
    print("=" * 60)
    if not score.has_data:
        print("No review data yet.")
        return
    for platform_score in score.per_platform:
        name = PLATFORMS[platform_score.platform].display_name
        print(f"  {name:<12} {_show(platform_score.rating):>5}/10  "
              f"({platform_score.review_count:,} reviews)")
    print(f"  {'Weighted':<12} {_show(score.weighted_score):>5}/10  "
          f"({score.total_reviews:,} reviews)")
    print(f"  Last updated: {score.last_updated:%Y-%m-%d %H:%M}")


def _lookup_hotel(hotel_id):
    hotel = get_hotel(hotel_id)
    if hotel is None:
        sys.exit(f"Hotel not found: {hotel_id}")
    return hotel


def _lookup_group(group_id):
    group = get_group(group_id)
    if group is None:
        sys.exit(f"Group not found: {group_id}")
    return group


def cmd_init(args):
    initialize_database()


def cmd_add_hotel(args):
    try:
        hotel = create_hotel(args.name, args.city, args.website)
    except ValueError as e:
        sys.exit(str(e))
    print(f"Added {hotel.name} ({hotel.city}): {hotel.id}")


def cmd_import_hotels(args):
    rows = pd.read_csv(args.file, dtype=str, keep_default_na=False).to_dict("records")
    created, errors = import_hotels(rows)
    for error in errors:
        print(f"  ✗ {error}")


def cmd_list(args):
    print("Hotels:")
    for hotel in list_hotels():
        print(f"  {hotel.id}  {hotel.name} ({hotel.city})")
    print("Groups:")
    for group in list_groups():
        print(f"  {group.id}  {group.name} ({len(group.member_ids)} hotels)")


def cmd_create_group(args):
    group = create_group(args.name)
    print(f"Created group {group.name}: {group.id}")


def cmd_add_member(args):
    _lookup_group(args.group)
    _lookup_hotel(args.hotel)
    if not add_group_member(args.group, args.hotel):
        print("Hotel is already in this group.")


def cmd_refresh(args):
    result = refresh_hotel(_lookup_hotel(args.hotel))
    if not result.succeeded:
        sys.exit(1)


def cmd_refresh_group(args):
    group = _lookup_group(args.group)
    bulk = refresh_hotels(list_hotels(group.member_ids), delay_seconds=args.delay)
    for error in bulk.errors:
        print(f"  ✗ {error}")
    if bulk.total and bulk.success_count == 0:
        sys.exit(1)


def cmd_score(args):
    hotel = _lookup_hotel(args.hotel)
    _print_score(f"{hotel.name} ({hotel.city})", get_hotel_score(hotel.id))


def cmd_group_score(args):
    group = _lookup_group(args.group)
    aggregate = get_group_score(group.id)
    _print_score(f"{group.name} — {aggregate.hotels_with_data} of "
                 f"{len(group.member_ids)} hotels with data", aggregate)


def cmd_trend(args):
    date_range = args.range
    if date_range is None:
        try:
            date_range = default_date_range()
        except ValueError as e:
            sys.exit(str(e))

    if args.group:
        points = get_group_trend(_lookup_group(args.group).id, date_range=date_range)
    else:
        points = get_hotel_trend(_lookup_hotel(args.hotel).id, date_range=date_range)
    if not points:
        print("No snapshots in this date range.")
    for point in points:
        print(f"  {point.date}  {_show(point.score):>5}/10  ({point.total_reviews:,} reviews)")


def cmd_export(args):
    if args.group:
        group = _lookup_group(args.group)
        hotels = list_hotels(group.member_ids)
        if args.history:
            table = group_history_table(group.name, hotels, get_observations(group.member_ids))
            prefix = f"group-{group.name}-history"
        else:
            table = group_table(group.name, hotels, get_group_score(group.id))
            prefix = f"group-{group.name}"
    elif args.hotel:
        hotel = _lookup_hotel(args.hotel)
        if args.history:
            table = hotel_history_table(hotel, get_observations([hotel.id]))
            prefix = f"{hotel.name}-history"
        else:
            table = hotel_table([hotel], get_hotel_scores([hotel.id]))
            prefix = hotel.name
    else:
        hotels = list_hotels()
        table = hotel_table(hotels, get_hotel_scores([h.id for h in hotels]))
        prefix = "hotels"

    output = args.output or generate_filename(prefix)
    with open(output, "wb") as f:
        f.write(to_csv_bytes(table))
    print(f"Exported {len(table)} rows to {output}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Hotel reputation dashboard — normalized 0-10 scores across review platforms",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  reputation init
  reputation add-hotel --name "The Plaza" --city "New York"
  reputation refresh-group <group-id>
  reputation trend --group <group-id> --range 90d
  reputation export --group <group-id> --history

Note: Set SERPAPI_KEY (in .env or the environment) before refreshing.
        """
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create the database tables").set_defaults(func=cmd_init)
    sub.add_parser("list", help="List hotels and groups").set_defaults(func=cmd_list)

    p = sub.add_parser("add-hotel", help="Add a hotel")
    p.add_argument("--name", required=True)
    p.add_argument("--city", required=True)
    p.add_argument("--website")
    p.set_defaults(func=cmd_add_hotel)

    p = sub.add_parser("import-hotels", help="Import hotels from a CSV with name and city columns")
    p.add_argument("file")
    p.set_defaults(func=cmd_import_hotels)

    p = sub.add_parser("create-group", help="Create a hotel group")
    p.add_argument("name")
    p.set_defaults(func=cmd_create_group)

    p = sub.add_parser("add-member", help="Add a hotel to a group")
    p.add_argument("group")
    p.add_argument("hotel")
    p.set_defaults(func=cmd_add_member)

    p = sub.add_parser("refresh", help="Fetch fresh ratings for one hotel")
    p.add_argument("hotel")
    p.set_defaults(func=cmd_refresh)

    p = sub.add_parser("refresh-group", help="Fetch fresh ratings for every hotel in a group")
    p.add_argument("group")
    p.add_argument("--delay", type=float, default=config.REFRESH_DELAY_SECONDS,
                   help=f"Seconds between hotels (default: {config.REFRESH_DELAY_SECONDS})")
    p.set_defaults(func=cmd_refresh_group)

    p = sub.add_parser("score", help="Show a hotel's current score")
    p.add_argument("hotel")
    p.set_defaults(func=cmd_score)

    p = sub.add_parser("group-score", help="Show a group's current aggregate")
    p.add_argument("group")
    p.set_defaults(func=cmd_group_score)

    for name, func, help_text in [("trend", cmd_trend, "Show a daily score series"),
                                  ("export", cmd_export, "Export scores to CSV")]:
        p = sub.add_parser(name, help=help_text)
        target = p.add_mutually_exclusive_group(required=(name == "trend"))
        target.add_argument("--hotel")
        target.add_argument("--group")
        p.set_defaults(func=func)
        if name == "trend":
            p.add_argument("--range", choices=list(DATE_RANGES),
                           help=f"Date range (default: DEFAULT_DATE_RANGE, currently {config.DEFAULT_DATE_RANGE})")
        else:
            p.add_argument("--history", action="store_true",
                           help="One row per snapshot instead of current scores")
            p.add_argument("--output", help="Output file (default: <name>-<date>.csv)")

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
