"""Build calendar events from raw portal records.

Every builder takes raw job/user/application dicts as returned by the portal
API plus a ``[start, end]`` window, and returns :class:`CalendarEvent` objects
for the records that fall inside it.  A record that cannot be processed is
counted in the optional :class:`BuildReport` and skipped; it never aborts the
batch.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from datetime import date, datetime, timezone

from . import config
from .models import (
    BuildReport,
    CalendarEvent,
    EventDetails,
    EventType,
    Filters,
    JobSummary,
    Role,
    UserSummary,
)

logger = logging.getLogger(__name__)

# Errors a malformed record can raise while being converted.
_RECORD_ERRORS = (KeyError, TypeError, ValueError, AttributeError)

_OBJECT_ID = re.compile(r"^[0-9a-f]{24}$", re.IGNORECASE)

_ROLE_ALIASES: dict[str, Role] = {
    "jobseeker": Role.JOB_SEEKER,
    "job_seeker": Role.JOB_SEEKER,
    "job seeker": Role.JOB_SEEKER,
    "job-seeker": Role.JOB_SEEKER,
    "candidate": Role.JOB_SEEKER,
    "trainer": Role.TRAINER,
    "employer": Role.EMPLOYER,
    "company": Role.EMPLOYER,
}


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def parse_timestamp(value) -> datetime | None:
    """Parse a portal timestamp into an aware UTC datetime.

    Handles ISO-8601 strings (with ``Z`` or an offset), date-only strings,
    ``datetime``/``date`` objects and epoch milliseconds.  Naive values are
    read as UTC.  Returns ``None`` for anything else.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            # Out of the platform's range, or NaN.
            return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip().replace("Z", "+00:00")
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def normalize_role(raw) -> Role:
    """Resolve a raw role value to :class:`Role`.

    Accepts role names in any common spelling and ``{"name": ...}`` objects.
    Bare ObjectId strings (an unpopulated reference) resolve to
    ``Role.UNKNOWN`` instead of being guessed at.
    """
    if isinstance(raw, dict):
        raw = raw.get("name") or raw.get("slug") or raw.get("type")
    if not isinstance(raw, str) or not raw.strip():
        return Role.UNKNOWN
    text = raw.strip()
    if _OBJECT_ID.match(text):
        return Role.UNKNOWN
    return _ROLE_ALIASES.get(text.lower(), Role.UNKNOWN)


def _record_id(record: dict) -> str:
    rid = record.get("_id") or record.get("id")
    if rid is None or rid == "":
        raise KeyError("_id")
    return str(rid)


def user_summary(record: dict) -> UserSummary:
    name = record.get("name") or " ".join(
        p for p in (record.get("firstName"), record.get("lastName")) if p
    )
    return UserSummary(
        id=_record_id(record),
        name=(name or "Unknown User").strip(),
        email=record.get("email") or "",
        role=normalize_role(record.get("role") or record.get("userType")),
    )


def job_summary(record: dict) -> JobSummary:
    company = record.get("company") or ""
    if isinstance(company, dict):
        company = company.get("name") or ""
    return JobSummary(
        id=_record_id(record),
        title=(record.get("title") or "Untitled Job").strip(),
        company=str(company),
    )


def index_jobs(jobs: Iterable[dict]) -> dict[str, JobSummary]:
    """Map job id -> :class:`JobSummary`, skipping unusable records."""
    index: dict[str, JobSummary] = {}
    for raw in jobs:
        try:
            summary = job_summary(raw)
        except _RECORD_ERRORS:
            continue
        index[summary.id] = summary
    return index


def _status(record: dict) -> str:
    status = record.get("status")
    if isinstance(status, str) and status.strip():
        return status.strip().lower()
    for key in ("isApproved", "approved"):
        if isinstance(record.get(key), bool):
            return "approved" if record[key] else "pending"
    return ""


def _resume_url(record: dict) -> str:
    info = record.get("professionalInfo") or {}
    url = info.get("resume") or record.get("resume") or record.get("resumeUrl") or ""
    if isinstance(url, dict):
        url = url.get("url") or ""
    return str(url).strip()


def _resume_timestamp(record: dict) -> datetime | None:
    info = record.get("professionalInfo") or {}
    for value in (
        info.get("resumeUploadedAt"),
        record.get("updatedAt"),
        record.get("createdAt"),
    ):
        dt = parse_timestamp(value)
        if dt is not None:
            return dt
    return None


def _in_window(dt: datetime, start: datetime, end: datetime) -> bool:
    return start <= dt <= end


def _utc(dt: datetime) -> datetime:
    parsed = parse_timestamp(dt)
    if parsed is None:
        raise ValueError(f"Invalid window bound: {dt!r}")
    return parsed


# ---------------------------------------------------------------------------
# Batch driver
# ---------------------------------------------------------------------------

def _build_all(
    records: Iterable[dict],
    build_one: Callable[[dict], list[CalendarEvent]],
    report: BuildReport | None,
    kind: str,
) -> list[CalendarEvent]:
    report = report if report is not None else BuildReport()
    events: list[CalendarEvent] = []
    for raw in records:
        report.processed += 1
        try:
            if not isinstance(raw, dict):
                raise TypeError(f"expected dict, got {type(raw).__name__}")
            built = build_one(raw)
        except _RECORD_ERRORS as exc:
            report.failed += 1
            logger.debug("Skipping %s record: %s", kind, exc)
            continue
        if built:
            report.built += len(built)
            events.extend(built)
        else:
            report.skipped += 1
    _check_failures(report, kind)
    return events


def _check_failures(report: BuildReport, kind: str) -> None:
    if report.processed and report.failure_ratio > config.FAILURE_WARNING_RATIO:
        report.warning = (
            f"{report.failed} of {report.processed} records could not be "
            f"processed ({report.failure_ratio:.0%})"
        )
        logger.warning("%s events: %s", kind, report.warning)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def create_resume_events(
    users: Iterable[dict],
    start: datetime,
    end: datetime,
    *,
    now: datetime | None = None,
    report: BuildReport | None = None,
) -> list[CalendarEvent]:
    """One ``resume`` event per user with a resume inside the window.

    Users with a resume but no derivable date are dated *now*; jobs get no
    such default.
    """
    start, end = _utc(start), _utc(end)
    fallback = _utc(now) if now is not None else datetime.now(timezone.utc)
    color = config.EVENT_TYPE_COLORS[EventType.RESUME.value]

    def build(raw: dict) -> list[CalendarEvent]:
        url = _resume_url(raw)
        if not url:
            return []
        when = _resume_timestamp(raw) or fallback
        if not _in_window(when, start, end):
            return []
        user = user_summary(raw)
        return [
            CalendarEvent(
                id=f"resume-{user.id}",
                title=f"Resume: {user.name}",
                start=when,
                type=EventType.RESUME,
                color=color,
                details=EventDetails(user=user, status=_status(raw), resume_url=url),
            )
        ]

    return _build_all(users, build, report, "resume")


def create_job_events(
    jobs: Iterable[dict],
    start: datetime,
    end: datetime,
    *,
    report: BuildReport | None = None,
) -> list[CalendarEvent]:
    """``newJob`` events from ``createdAt`` and ``deadline`` events from
    ``applicationDeadline``, each kept only inside the window."""
    start, end = _utc(start), _utc(end)

    def build(raw: dict) -> list[CalendarEvent]:
        job = job_summary(raw)
        status = _status(raw)
        built: list[CalendarEvent] = []

        created = parse_timestamp(raw.get("createdAt"))
        if created is not None and _in_window(created, start, end):
            built.append(
                CalendarEvent(
                    id=f"job-{job.id}",
                    title=f"New Job: {job.title}",
                    start=created,
                    type=EventType.NEW_JOB,
                    color=config.EVENT_TYPE_COLORS[EventType.NEW_JOB.value],
                    details=EventDetails(job=job, status=status),
                )
            )

        deadline = parse_timestamp(raw.get("applicationDeadline") or raw.get("deadline"))
        if deadline is not None and _in_window(deadline, start, end):
            built.append(
                CalendarEvent(
                    id=f"deadline-{job.id}",
                    title=f"Deadline: {job.title}",
                    start=deadline,
                    type=EventType.DEADLINE,
                    color=config.EVENT_TYPE_COLORS[EventType.DEADLINE.value],
                    details=EventDetails(job=job, status=status),
                )
            )
        return built

    return _build_all(jobs, build, report, "job")


def create_application_events(
    applications: Iterable[dict],
    start: datetime,
    end: datetime,
    *,
    jobs_by_id: dict[str, JobSummary] | None = None,
    report: BuildReport | None = None,
) -> list[CalendarEvent]:
    """``interview`` events for applications with an interview in the window.

    ``job``/``user`` may be populated objects or bare ids; bare job ids are
    resolved through *jobs_by_id*.
    """
    start, end = _utc(start), _utc(end)
    jobs_by_id = jobs_by_id or {}

    def build(raw: dict) -> list[CalendarEvent]:
        when = parse_timestamp(raw.get("interviewDate"))
        if when is None or not _in_window(when, start, end):
            return []
        app_id = _record_id(raw)

        job_ref = raw.get("job")
        if isinstance(job_ref, dict):
            job = jobs_by_id.get(str(job_ref.get("_id"))) or job_summary(job_ref)
        else:
            job = jobs_by_id.get(str(job_ref)) or JobSummary(
                id=str(job_ref or ""), title="Unknown Position",
            )

        user_ref = raw.get("user")
        if isinstance(user_ref, dict) and user_ref.get("name"):
            user = user_summary(user_ref)
        else:
            user = UserSummary(id=str(user_ref or ""), name="Unknown Applicant")

        status = _status(raw) or "pending"

        return [
            CalendarEvent(
                id=f"interview-{app_id}",
                title=f"Interview: {user.name} - {job.title}",
                start=when,
                type=EventType.INTERVIEW,
                color=config.STATUS_COLORS.get(status, config.STATUS_COLORS["other"]),
                details=EventDetails(user=user, job=job, status=status),
            )
        ]

    return _build_all(applications, build, report, "application")


def make_custom_event(
    title: str,
    start: datetime,
    *,
    event_id: str,
    status: str = "",
) -> CalendarEvent:
    """Admin-defined event not backed by a portal record."""
    when = parse_timestamp(start)
    if when is None:
        raise ValueError(f"Invalid start for custom event: {start!r}")
    if not title.strip():
        raise ValueError("Custom event title must not be empty")
    return CalendarEvent(
        id=f"custom-{event_id}",
        title=title.strip(),
        start=when,
        type=EventType.CUSTOM,
        color=config.EVENT_TYPE_COLORS[EventType.CUSTOM.value],
        details=EventDetails(status=status),
    )


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

def apply_filters(events: Iterable[CalendarEvent], filters: Filters) -> list[CalendarEvent]:
    """Keep events matching *filters*.

    Each dimension only applies to events that carry it: a role filter never
    hides job events, and a status filter never hides events without a status.
    """
    kept: list[CalendarEvent] = []
    for ev in events:
        if not filters.wants(ev.type):
            continue
        d = ev.details
        if filters.status != "all" and d.status and d.status != filters.status:
            continue
        if filters.role != "all" and d.user is not None and d.user.role.value != filters.role:
            continue
        if filters.job_id != "all" and d.job is not None and d.job.id != filters.job_id:
            continue
        kept.append(ev)
    return kept


def sort_events(events: Iterable[CalendarEvent]) -> list[CalendarEvent]:
    """Chronological order, ties broken by id so output is deterministic."""
    return sorted(events, key=lambda ev: (ev.start, ev.id))
