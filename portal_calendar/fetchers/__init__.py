"""Portal record fetchers.

Each record kind has a declarative, ordered list of fetchers.  The
orchestrator probes them in order and stops at the first one that returns
records.
"""

from __future__ import annotations

from .. import config
from .base import BaseFetcher, FetchedPage
from .endpoint import DashboardStatsFetcher, EndpointFetcher
from .mock import MockFetcher

__all__ = [
    "APPLICATION_FETCHERS",
    "BaseFetcher",
    "DashboardStatsFetcher",
    "EndpointFetcher",
    "FetchedPage",
    "JOB_FETCHERS",
    "MockFetcher",
    "USER_FALLBACK_FETCHERS",
    "USER_FETCHERS",
    "get_fetcher",
]

# Primary user endpoints – add new candidates here.
USER_FETCHERS: tuple[BaseFetcher, ...] = tuple(
    # "/admin/users" -> "admin-users"
    EndpointFetcher(path.strip("/").replace("/", "-"), path, keys=("users",))
    for path in config.USER_ENDPOINTS
)

USER_FALLBACK_FETCHERS: tuple[BaseFetcher, ...] = (
    DashboardStatsFetcher(config.DASHBOARD_STATS_ENDPOINT),
)

JOB_FETCHERS: tuple[BaseFetcher, ...] = (
    EndpointFetcher("jobs", config.JOBS_ENDPOINT, keys=("jobs",)),
)

APPLICATION_FETCHERS: tuple[BaseFetcher, ...] = (
    EndpointFetcher("applications", config.APPLICATIONS_ENDPOINT, keys=("applications",)),
)

# Registry of every named fetcher.
_FETCHERS: dict[str, BaseFetcher] = {
    f.name: f
    for f in (
        *USER_FETCHERS,
        *USER_FALLBACK_FETCHERS,
        *JOB_FETCHERS,
        *APPLICATION_FETCHERS,
        MockFetcher("users"),
        MockFetcher("jobs"),
        MockFetcher("applications"),
    )
}


def get_fetcher(name: str) -> BaseFetcher:
    """Return a fetcher by name.

    Raises ``KeyError`` if *name* is not registered.
    """
    try:
        return _FETCHERS[name]
    except KeyError:
        available = ", ".join(sorted(_FETCHERS))
        raise KeyError(
            f"Unknown fetcher '{name}'. Available: {available}"
        ) from None
