"""
config.py
----------
Settings for the ingest and query services, read from the environment.
A .env file in the project root is loaded first if present.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# NYC Open Data: DOHMH New York City Restaurant Inspection Results
SOCRATA_URL = os.getenv(
    "SOCRATA_URL",
    "https://data.cityofnewyork.us/resource/43nn-pn8j.json"
)
# Optional app token, raises the Socrata rate limit when set
SOCRATA_APP_TOKEN = os.getenv("SOCRATA_APP_TOKEN", "")

PAGE_SIZE = int(os.getenv("PAGE_SIZE", "1000"))
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "60"))
MAX_RETRIES = int(os.getenv("MAX_RETRIES", "3"))
RETRY_DELAY = float(os.getenv("RETRY_DELAY", "2"))

# Embedded SQLite by default; any SQLAlchemy URL works
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///abceats.db")

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SNAPSHOT_PATH = Path(os.getenv("SNAPSHOT_PATH", str(PROJECT_ROOT / "data" / "restaurants_data.json")))

STALE_AFTER_HOURS = float(os.getenv("STALE_AFTER_HOURS", "24"))

# Background refresh: "interval" fires every REFRESH_INTERVAL_HOURS,
# "daily" fires at REFRESH_DAILY_HOUR local time
REFRESH_TASK_ID = "com.abceats.refresh"
REFRESH_MODE = os.getenv("REFRESH_MODE", "interval")
REFRESH_INTERVAL_HOURS = float(os.getenv("REFRESH_INTERVAL_HOURS", "4"))
REFRESH_DAILY_HOUR = int(os.getenv("REFRESH_DAILY_HOUR", "4"))
BACKGROUND_BUDGET_SECONDS = float(os.getenv("BACKGROUND_BUDGET_SECONDS", "1800"))
# A refresh claim older than this is treated as left behind by a crashed process
REFRESH_CLAIM_TIMEOUT_SECONDS = float(os.getenv("REFRESH_CLAIM_TIMEOUT_SECONDS", "7200"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
