"""
Rating scraper — looks up a hotel's rating on each review platform.
All four platforms go through SerpAPI:
    - Google: the Google Maps engine returns rating and review count directly.
    - TripAdvisor, Booking.com, Expedia: a "site:" Google search, then the
      rating is read from the first result's rich snippet or snippet text.

Each fetcher returns a ProviderRating {rating, review_count, scale}.
rating is None when the listing was found but no rating could be read.
Failures (no API key, HTTP errors, no listing) raise ScraperError.
"""

import re
from typing import Optional

import requests

from reputation import config
from reputation.models import PLATFORMS, ProviderRating


class ScraperError(RuntimeError):
    """A platform lookup failed."""


# Patterns seen in Google result snippets
_RATING_OUT_OF = re.compile(r"(\d+\.?\d*)\s*(?:/|out of)\s*(5|10)\b", re.IGNORECASE)
_RATING_WITH_COUNT = re.compile(r"(\d+\.?\d*)\((\d[\d,]*)\)")
_REVIEW_COUNT = re.compile(r"([\d,]+)\s*reviews?", re.IGNORECASE)


def _serpapi_search(params: dict) -> dict:
    """Call SerpAPI and return the decoded JSON response."""
    if not config.SERPAPI_KEY:
        raise ScraperError("SerpAPI key not configured (set SERPAPI_KEY)")

    try:
        response = requests.get(
            config.SERPAPI_URL,
            params={**params, "api_key": config.SERPAPI_KEY},
            timeout=config.REQUEST_TIMEOUT_SECONDS,
        )
        response.raise_for_status()  # Raises exception if HTTP error (404, 500, etc.)
        data = response.json()
    except requests.RequestException as e:
        raise ScraperError(f"SerpAPI request failed: {e}") from e
    except ValueError as e:
        raise ScraperError("SerpAPI returned invalid JSON") from e

    if data.get("error"):
        raise ScraperError(f"SerpAPI error: {data['error']}")
    return data


def _to_int(value) -> int:
    if value is None:
        return 0
    try:
        return int(str(value).replace(",", ""))
    except ValueError:
        return 0


def _to_float(value) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


# ============================================================
# Google Maps
# ============================================================

def parse_google_maps_response(data: dict) -> Optional[ProviderRating]:
    """
    Read rating and review count from a google_maps search.
    Checks place_results first (exact match), then the first local result.
    The listing's thumbnail comes along as image_url.
    Returns None if neither is present.
    """
    result = data.get("place_results")
    if not result:
        local = data.get("local_results") or []
        result = local[0] if local else None
    if not result:
        return None

    return ProviderRating(
        rating=_to_float(result.get("rating")),
        review_count=_to_int(result.get("reviews")),
        scale="1-5",
        url=result.get("website"),
        image_url=result.get("thumbnail"),
    )


def fetch_google_rating(hotel_name: str, city: str) -> ProviderRating:
    query = f"{hotel_name} hotel {city}"
    print(f"  Searching Google Maps for: {query}")
    data = _serpapi_search({"engine": "google_maps", "q": query, "type": "search"})

    parsed = parse_google_maps_response(data)
    if parsed is None:
        raise ScraperError(f'No Google Maps results for "{hotel_name}" in {city}')
    return parsed


# ============================================================
# Site searches (TripAdvisor, Booking.com, Expedia)
# ============================================================

def parse_snippet_rating(result: dict, default_scale: Optional[str]) -> ProviderRating:
    """
    Extract rating, review count and scale from one organic search result.

    Sources, in order of preference:
        1. rich_snippet.top.detected_extensions  {"rating": 4.5, "reviews": 160}
        2. rich_snippet.top.extensions           ["4.5(160)", "4.5/5", "1,234 reviews"]
        3. rich_snippet.rating / .reviews
        4. the plain snippet text                "Rated 8.6/10 from 2,345 reviews"

    The scale is whatever the text states ("/5", "/10", or the "4.5(160)" star
    form). When nothing states one, default_scale is used; with no default
    (Expedia) a value above 5 is read as 0-10 and anything else as 1-5.
    """
    rating: Optional[float] = None
    review_count = 0
    scale: Optional[str] = None

    snippet = result.get("rich_snippet") or {}
    top = snippet.get("top") or {}

    extensions = top.get("detected_extensions") or {}
    if extensions.get("rating") is not None:
        rating = _to_float(extensions.get("rating"))
    if extensions.get("reviews") is not None:
        review_count = _to_int(extensions.get("reviews"))

    texts = [t for t in (top.get("extensions") or []) if isinstance(t, str)]
    for text in texts:
        combined = _RATING_WITH_COUNT.search(text)
        if combined:
            if rating is None:
                rating, scale = float(combined.group(1)), "1-5"
            elif scale is None and float(combined.group(1)) == rating:
                scale = "1-5"
            if not review_count:
                review_count = _to_int(combined.group(2))
        rating, scale, review_count = _read_text(text, rating, scale, review_count)

    if rating is None and snippet.get("rating") is not None:
        rating = _to_float(snippet.get("rating"))
    if not review_count and snippet.get("reviews") is not None:
        review_count = _to_int(snippet.get("reviews"))

    if rating is None and result.get("snippet"):
        rating, scale, review_count = _read_text(result["snippet"], rating, scale, review_count)

    if rating is not None and scale is None:
        scale = default_scale or ("0-10" if rating > 5 else "1-5")

    return ProviderRating(rating=rating, review_count=review_count, scale=scale,
                          url=result.get("link"))


def _read_text(text: str, rating, scale, review_count):
    """Pick up "x/5", "x out of 10" and "n reviews" from a line of text."""
    out_of = _RATING_OUT_OF.search(text)
    if out_of and rating is None:
        rating = float(out_of.group(1))
        scale = "1-5" if out_of.group(2) == "5" else "0-10"
    elif out_of and scale is None and float(out_of.group(1)) == rating:
        scale = "1-5" if out_of.group(2) == "5" else "0-10"

    reviews = _REVIEW_COUNT.search(text)
    if reviews and not review_count:
        review_count = _to_int(reviews.group(1))
    return rating, scale, review_count


def fetch_site_rating(platform: str, hotel_name: str, city: str) -> ProviderRating:
    """Look up a hotel's rating on a platform via a site: Google search."""
    info = PLATFORMS[platform]
    query = f"site:{info.site} {hotel_name} {city}"
    print(f"  Searching for {info.display_name} rating via Google: {query}")
    data = _serpapi_search({"engine": "google", "q": query})

    results = data.get("organic_results") or []
    if not results or not results[0].get("link"):
        raise ScraperError(f'No {info.display_name} page found for "{hotel_name}" in {city}. '
                           f"The hotel may not be listed on {info.display_name}.")

    # Expedia's own pages use 0-10 but Google may render 1-5, so its scale
    # must come from the snippet rather than a fixed default
    default_scale = None if platform == "expedia" else info.default_scale
    return parse_snippet_rating(results[0], default_scale)


def fetch_tripadvisor_rating(hotel_name: str, city: str) -> ProviderRating:
    return fetch_site_rating("tripadvisor", hotel_name, city)


def fetch_booking_rating(hotel_name: str, city: str) -> ProviderRating:
    return fetch_site_rating("booking", hotel_name, city)


def fetch_expedia_rating(hotel_name: str, city: str) -> ProviderRating:
    return fetch_site_rating("expedia", hotel_name, city)


FETCHERS = {
    "google": fetch_google_rating,
    "tripadvisor": fetch_tripadvisor_rating,
    "booking": fetch_booking_rating,
    "expedia": fetch_expedia_rating,
}


# ---- Quick test ----
# This block only runs when you execute this file directly (not when imported)
if __name__ == "__main__":
    print("=" * 60)
    print("TESTING: platform lookups")
    print("=" * 60)
    for key, fetch in FETCHERS.items():
        try:
            print(f"{key}: {fetch('The Plaza', 'New York')}")
        except ScraperError as e:
            print(f"{key}: {e}")
