"""Admin calendar aggregation for the job portal."""

from __future__ import annotations

from .batching import BatchRenderer, Visibility
from .cache import EventCache, make_cache_key
from .client import PortalClient, PortalResponseError, PortalTransportError
from .controller import CalendarController, LocalStore
from .models import CalendarEvent, EventType, Filters, Pagination
from .orchestrator import CalendarFetchError, CalendarOrchestrator

__all__ = [
    "BatchRenderer",
    "CalendarController",
    "CalendarEvent",
    "CalendarFetchError",
    "CalendarOrchestrator",
    "EventCache",
    "EventType",
    "Filters",
    "LocalStore",
    "Pagination",
    "PortalClient",
    "PortalResponseError",
    "PortalTransportError",
    "Visibility",
    "make_cache_key",
]
