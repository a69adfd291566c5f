"""Normalised calendar models shared by the builder, cache and controller."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class EventType(str, Enum):
    """Kinds of calendar events.  Values match the portal's wire format."""

    RESUME = "resume"
    INTERVIEW = "interview"
    NEW_JOB = "newJob"
    DEADLINE = "deadline"
    CUSTOM = "custom"


class Role(str, Enum):
    """User roles as stored by the portal, resolved once from raw records."""

    JOB_SEEKER = "jobSeeker"
    TRAINER = "trainer"
    EMPLOYER = "employer"
    UNKNOWN = "unknown"


STATUS_CHOICES = ("all", "approved", "pending")
ROLE_CHOICES = ("all", "jobSeeker", "trainer", "employer")
EVENT_TYPE_CHOICES = ("all",) + tuple(t.value for t in EventType)


@dataclass(frozen=True, slots=True)
class UserSummary:
    id: str
    name: str
    email: str = ""
    role: Role = Role.UNKNOWN


@dataclass(frozen=True, slots=True)
class JobSummary:
    id: str
    title: str
    company: str = ""


@dataclass(frozen=True, slots=True)
class EventDetails:
    """Typed payload attached to an event (``extendedProps`` in the UI)."""

    user: UserSummary | None = None
    job: JobSummary | None = None
    status: str = ""
    resume_url: str = ""


@dataclass(frozen=True, slots=True)
class CalendarEvent:
    """Source-agnostic representation of a single admin calendar event.

    Built by :mod:`portal_calendar.events` from raw portal records and never
    mutated afterwards; a new fetch cycle produces a fresh list.
    """

    id: str                          # Unique per event, e.g. "resume-<user id>"
    title: str
    start: datetime                  # Aware, UTC
    type: EventType
    color: str                       # CSS hex colour
    details: EventDetails = field(default_factory=EventDetails)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    key: str
    events: tuple[CalendarEvent, ...]
    total: int
    timestamp: float                 # Clock reading when the entry was stored


@dataclass(frozen=True, slots=True)
class Filters:
    """Filter selections of the calendar view.

    ``job_id`` is either ``"all"`` or a portal job id.
    """

    status: str = "all"
    role: str = "all"
    event_type: str = "all"
    job_id: str = "all"

    def __post_init__(self) -> None:
        if self.status not in STATUS_CHOICES:
            raise ValueError(f"Invalid status filter '{self.status}'")
        if self.role not in ROLE_CHOICES:
            raise ValueError(f"Invalid role filter '{self.role}'")
        if self.event_type not in EVENT_TYPE_CHOICES:
            raise ValueError(f"Invalid event type filter '{self.event_type}'")
        if not self.job_id:
            raise ValueError("job_id filter must be 'all' or a job id")

    def to_dict(self) -> dict[str, str]:
        return {
            "status": self.status,
            "role": self.role,
            "eventType": self.event_type,
            "jobId": self.job_id,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> Filters:
        """Inverse of :meth:`to_dict`; missing keys fall back to ``"all"``."""
        return cls(
            status=raw.get("status") or "all",
            role=raw.get("role") or "all",
            event_type=raw.get("eventType") or "all",
            job_id=raw.get("jobId") or "all",
        )

    def wants(self, event_type: EventType) -> bool:
        return self.event_type in ("all", event_type.value)


@dataclass(slots=True)
class Pagination:
    page: int = 1
    limit: int = 100
    has_more: bool = False
    total: int = 0

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError("page must be >= 1")
        if self.limit < 1:
            raise ValueError("limit must be >= 1")


@dataclass(slots=True)
class BuildReport:
    """Per-record outcome of one Event Builder pass."""

    processed: int = 0
    built: int = 0
    skipped: int = 0
    failed: int = 0
    warning: str = ""

    @property
    def failure_ratio(self) -> float:
        return self.failed / self.processed if self.processed else 0.0


@dataclass(frozen=True, slots=True)
class FetchResult:
    """Outcome of one orchestrated fetch cycle."""

    events: tuple[CalendarEvent, ...]
    total: int
    pagination: Pagination
    source: str                      # "cache", "network", "mock", "stale-cache"
    from_cache: bool = False
    stale: bool = False
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Notice:
    """User-facing message (toast or banner).

    ``action`` names the affordance offered with it, e.g. ``"retry"``.
    """

    level: str                       # "info", "warning" or "error"
    message: str
    action: str = ""
