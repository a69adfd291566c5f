"""Configuration constants and environment lookups.

Values that differ between deployments come from environment variables;
everything else is a module constant.
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Portal API
# ---------------------------------------------------------------------------

API_BASE_URL_ENV = "PORTAL_API_URL"
API_TOKEN_ENV = "PORTAL_API_TOKEN"
ENVIRONMENT_ENV = "PORTAL_ENV"
HTTP_TIMEOUT_ENV = "PORTAL_HTTP_TIMEOUT"

DEFAULT_API_BASE_URL = "http://localhost:5000/api"
DEFAULT_HTTP_TIMEOUT = 10.0       # seconds

# Candidate user endpoints, probed in order until one returns records.
USER_ENDPOINTS = (
    "/admin/users",
    "/dashboard/users",
    "/users/list",
    "/users/all",
)
# Last-resort summary endpoint; records live under ``recentUsers``.
DASHBOARD_STATS_ENDPOINT = "/dashboard/stats"
JOBS_ENDPOINT = "/jobs"
APPLICATIONS_ENDPOINT = "/applications"

# ---------------------------------------------------------------------------
# Fetch behaviour
# ---------------------------------------------------------------------------

CACHE_TTL_SECONDS = 5 * 60
CACHE_MAX_ENTRIES = 100           # None disables the cap
MAX_RETRIES = 3
BASE_BACKOFF_SECONDS = 1.0        # delay = base * 2 ** attempt
DEFAULT_PAGE_LIMIT = 100
DEFAULT_SORT = "-createdAt"

# Share of failed records above which the builder reports a warning.
FAILURE_WARNING_RATIO = 0.10

# ---------------------------------------------------------------------------
# View / rendering
# ---------------------------------------------------------------------------

BATCH_SIZE = 200
BATCH_INTERVAL_SECONDS = 0.1
DEBOUNCE_SECONDS = 0.4
REFRESH_INTERVAL_SECONDS = 5 * 60
MIN_REFRESH_GAP_SECONDS = 60
LOADING_WATCHDOG_SECONDS = 10.0

FILTERS_STORAGE_KEY = "adminCalendarFilters"
DEFAULT_STORE_PATH = os.path.join(
    os.path.expanduser("~"), ".portal_calendar", "storage.json",
)

EXPORT_EVENT_DURATION_MINUTES = 60

# Event colours by type.
EVENT_TYPE_COLORS: dict[str, str] = {
    "resume": "#FF9F40",      # Orange
    "interview": "#9966FF",   # Purple
    "newJob": "#2ECC71",      # Green
    "deadline": "#FF6384",    # Red
    "custom": "#C9CBCF",      # Gray
}

# Application events are coloured by application status instead.
STATUS_COLORS: dict[str, str] = {
    "pending": "#FFCD56",      # Yellow
    "reviewing": "#36A2EB",    # Blue
    "reviewed": "#36A2EB",
    "shortlisted": "#4BC0C0",  # Teal
    "interviewed": "#9966FF",  # Purple
    "offered": "#4BC0C0",
    "accepted": "#2ECC71",     # Green
    "hired": "#2ECC71",
    "rejected": "#FF6384",     # Red
    "declined": "#FF6384",
    "withdrawn": "#FF9F40",    # Orange
    "other": "#C9CBCF",        # Gray
}


def api_base_url() -> str:
    return os.environ.get(API_BASE_URL_ENV, "") or DEFAULT_API_BASE_URL


def api_token() -> str:
    return os.environ.get(API_TOKEN_ENV, "")


def http_timeout() -> float:
    raw = os.environ.get(HTTP_TIMEOUT_ENV, "")
    try:
        return float(raw) if raw else DEFAULT_HTTP_TIMEOUT
    except ValueError:
        return DEFAULT_HTTP_TIMEOUT


def is_production() -> bool:
    """True when ``PORTAL_ENV`` is ``production`` (mock data disabled)."""
    return os.environ.get(ENVIRONMENT_ENV, "development").strip().lower() == "production"
