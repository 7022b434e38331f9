"""
Ingestion — fetch fresh ratings and append them to the snapshot log.

Per hotel, the four platforms are fetched in parallel (threads). One platform
failing never discards the others: every success is saved, every failure is
reported next to it.

Across hotels, refreshes run one after another with a fixed pause in between
to respect the provider's rate limit. The pause is a caller policy; the score
processor does not care in which order observations arrive.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, Optional

from reputation import config
from reputation.database import insert_observations, set_hotel_image
from reputation.models import (
    PLATFORM_ORDER, BulkRefreshResult, Hotel, PlatformResult, RefreshResult,
)
from reputation.processor import round_score, to_reading, weighted_average
from reputation.scraper import FETCHERS, ScraperError

# fetcher(hotel_name, city) -> ProviderRating
Fetcher = Callable[[str, str], object]


def _fetch_platform(hotel: Hotel, platform: str, fetcher: Fetcher) -> PlatformResult:
    """Fetch and normalize one platform. Never raises for expected failures."""
    try:
        provider_rating = fetcher(hotel.name, hotel.city)
        reading = to_reading(hotel.id, platform, provider_rating)
    except ScraperError as e:
        return PlatformResult(platform=platform, success=False, error=str(e))
    except ValueError as e:
        return PlatformResult(platform=platform, success=False, error=f"Invalid rating: {e}")

    image_url = getattr(provider_rating, "image_url", None)
    if reading is None:
        return PlatformResult(
            platform=platform, success=False, image_url=image_url,
            error="Listing found but no rating could be read. "
                  "The property may not have reviews yet.",
        )
    return PlatformResult(platform=platform, success=True, reading=reading, image_url=image_url)


def refresh_hotel(hotel: Hotel,
                  fetchers: Optional[dict[str, Fetcher]] = None,
                  db_path: Optional[str] = None) -> RefreshResult:
    """
    Fetch all platforms for one hotel in parallel and store the successes.
    The first listing thumbnail found is kept as the hotel image if it has none.

    Args:
        fetchers: platform -> fetch function. Defaults to the SerpAPI fetchers.

    Returns:
        RefreshResult with one PlatformResult per platform, the number of
        snapshots saved, and the weighted score of this fetch (None if nothing
        usable came back).
    """
    fetchers = fetchers or FETCHERS
    platforms = [p for p in PLATFORM_ORDER if p in fetchers]

    print(f"Fetching reviews for hotel: {hotel.name} ({hotel.city})")

    with ThreadPoolExecutor(max_workers=len(platforms) or 1) as executor:
        futures = {
            platform: executor.submit(_fetch_platform, hotel, platform, fetchers[platform])
            for platform in platforms
        }

        results = {}
        for platform, future in futures.items():
            try:
                results[platform] = future.result()
            except Exception as e:
                # Anything unexpected from a fetcher is still only this platform's failure
                results[platform] = PlatformResult(platform=platform, success=False,
                                                   error=f"Request failed: {e}")

    readings = []
    for platform, result in results.items():
        if result.success:
            r = result.reading
            readings.append(r)
            print(f"  ✓ {platform}: {r.raw_rating} ({r.review_count} reviews)")
        else:
            print(f"  ✗ {platform}: {result.error}")

    stored = insert_observations(readings, db_path=db_path)
    if stored:
        print(f"  ✓ Saved {len(stored)} review snapshots")

    if not hotel.image_url:
        image_url = next((r.image_url for r in results.values() if r.image_url), None)
        if image_url and set_hotel_image(hotel.id, image_url, db_path=db_path):
            hotel.image_url = image_url
            print("  ✓ Saved hotel thumbnail")

    score = round_score(weighted_average(
        (r.normalized_rating, r.review_count) for r in readings
    ))
    if score is not None:
        print(f"  ✓ Weighted score: {score}/10")

    return RefreshResult(hotel_id=hotel.id, results=results,
                         saved_count=len(stored), weighted_score=score)


def refresh_hotels(hotels: Iterable[Hotel],
                   fetchers: Optional[dict[str, Fetcher]] = None,
                   delay_seconds: Optional[float] = None,
                   progress_callback=None,
                   sleep: Callable[[float], None] = time.sleep,
                   db_path: Optional[str] = None) -> BulkRefreshResult:
    """
    Refresh many hotels one after another, pausing between hotels.

    A hotel counts as refreshed when at least one platform succeeded.
    Failures are collected as "<hotel>: <error>" and never stop the run.

    Args:
        delay_seconds:     pause between hotels (default REFRESH_DELAY_SECONDS).
        progress_callback: optional function(current, total, message)
    """
    hotels = list(hotels)
    delay = config.REFRESH_DELAY_SECONDS if delay_seconds is None else delay_seconds
    bulk = BulkRefreshResult(total=len(hotels))

    print("=" * 60)
    print(f"REFRESH: {len(hotels)} hotels (delay {delay}s between hotels)")
    print("=" * 60)

    for i, hotel in enumerate(hotels):
        if progress_callback:
            progress_callback(i, len(hotels), f"Refreshing {hotel.name} ({i + 1}/{len(hotels)})")

        try:
            result = refresh_hotel(hotel, fetchers=fetchers, db_path=db_path)
        except Exception as e:
            bulk.errors.append(f"{hotel.name}: {e}")
            print(f"  ✗ {hotel.name}: {e}")
        else:
            bulk.results.append(result)
            if result.succeeded:
                bulk.success_count += 1
            else:
                failures = "; ".join(f"{p}: {err}" for p, err in result.failed.items())
                bulk.errors.append(f"{hotel.name}: {failures}")

        # Rate limiting delay (except after last hotel)
        if i < len(hotels) - 1 and delay > 0:
            sleep(delay)

    if progress_callback:
        progress_callback(len(hotels), len(hotels), "Complete!")

    print(f"\nRefreshed {bulk.success_count} of {bulk.total} hotels ({len(bulk.errors)} with errors)")
    return bulk
