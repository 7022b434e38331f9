"""
Configuration loader.
Reads settings from .env file and makes them available to the rest of the app.
"""

import os
from dotenv import load_dotenv

load_dotenv()

# SerpAPI settings — every platform rating is looked up through SerpAPI
SERPAPI_KEY = os.getenv("SERPAPI_KEY")
SERPAPI_URL = os.getenv("SERPAPI_URL", "https://serpapi.com/search")
REQUEST_TIMEOUT_SECONDS = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "15"))

# Bulk refresh: fixed pause between hotels to stay under the provider's rate limit
REFRESH_DELAY_SECONDS = float(os.getenv("REFRESH_DELAY_SECONDS", "1.5"))
LARGE_REFRESH_WARNING = int(os.getenv("LARGE_REFRESH_WARNING", "50"))

# Trend points are bucketed by calendar date in this timezone
REFERENCE_TIMEZONE = os.getenv("REFERENCE_TIMEZONE", "UTC")
DEFAULT_DATE_RANGE = os.getenv("DEFAULT_DATE_RANGE", "30d")

# Dashboard credentials
DASHBOARD_USERNAME = os.getenv("DASHBOARD_USERNAME", "admin")
DASHBOARD_PASSWORD = os.getenv("DASHBOARD_PASSWORD", "changeme123")

# One SQLite file holds hotels, groups and the review snapshot log
DATABASE_PATH = os.getenv(
    "DATABASE_PATH",
    os.path.join(os.path.dirname(os.path.dirname(__file__)), "data", "reputation.db"),
)
