"""Serialise the current event list as CSV, JSON or iCalendar."""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone

import icalendar

from . import config
from .models import CalendarEvent, Notice, Role

CSV_HEADERS = [
    "Date", "Time", "Title", "Event Type", "Status",
    "User Name", "User Email", "User Role",
]

EMPTY_EXPORT_MESSAGE = "No data to export"

_ICAL_PRODID = "-//Job Portal//Admin Calendar//EN"


def _role(ev: CalendarEvent) -> str:
    user = ev.details.user
    if user is None or user.role is Role.UNKNOWN:
        return ""
    return user.role.value


def _empty(events: Sequence[CalendarEvent], notify: Callable[[Notice], None] | None) -> bool:
    if events:
        return False
    if notify is not None:
        notify(Notice("info", EMPTY_EXPORT_MESSAGE))
    return True


def to_csv(
    events: Sequence[CalendarEvent],
    notify: Callable[[Notice], None] | None = None,
) -> str | None:
    """CSV text, or ``None`` (after a notice) for an empty list."""
    if _empty(events, notify):
        return None
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_HEADERS)
    for ev in events:
        user = ev.details.user
        writer.writerow([
            ev.start.strftime("%Y-%m-%d"),
            ev.start.strftime("%H:%M"),
            ev.title,
            ev.type.value,
            ev.details.status,
            user.name if user else "",
            user.email if user else "",
            _role(ev),
        ])
    return buf.getvalue()


def to_json(
    events: Sequence[CalendarEvent],
    notify: Callable[[Notice], None] | None = None,
) -> str | None:
    """JSON array text, or ``None`` (after a notice) for an empty list."""
    if _empty(events, notify):
        return None
    rows = []
    for ev in events:
        user = ev.details.user
        rows.append({
            "title": ev.title,
            "date": ev.start.isoformat(),
            "type": ev.type.value,
            "status": ev.details.status,
            "user": (
                {"name": user.name, "email": user.email, "role": _role(ev)}
                if user else None
            ),
            "resumeUrl": ev.details.resume_url or None,
        })
    return json.dumps(rows, indent=2)


def to_ical(
    events: Sequence[CalendarEvent],
    notify: Callable[[Notice], None] | None = None,
    *,
    stamp: datetime | None = None,
    duration_minutes: int = config.EXPORT_EVENT_DURATION_MINUTES,
) -> str | None:
    """iCalendar text with one ``VEVENT`` per event, or ``None`` if empty."""
    if _empty(events, notify):
        return None
    dtstamp = (stamp or datetime.now(timezone.utc)).astimezone(timezone.utc)
    cal = icalendar.Calendar()
    cal.add("prodid", _ICAL_PRODID)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    for ev in events:
        start = ev.start.astimezone(timezone.utc)
        vevent = icalendar.Event()
        vevent.add("uid", f"{ev.id}@jobportal")
        vevent.add("dtstamp", dtstamp)
        vevent.add("dtstart", start)
        vevent.add("dtend", start + timedelta(minutes=duration_minutes))
        vevent.add("summary", ev.title)
        if ev.details.status:
            vevent.add("description", f"Status: {ev.details.status}")
        vevent.add("categories", [ev.type.value])
        cal.add_component(vevent)
    return cal.to_ical().decode("utf-8")


EXPORTERS: dict[str, Callable[..., str | None]] = {
    "csv": to_csv,
    "json": to_json,
    "ics": to_ical,
}


def export_events(
    events: Sequence[CalendarEvent],
    fmt: str,
    notify: Callable[[Notice], None] | None = None,
) -> str | None:
    """Dispatch to the exporter for *fmt* (``csv``, ``json`` or ``ics``).

    Raises ``KeyError`` for an unknown format.
    """
    try:
        exporter = EXPORTERS[fmt.lower()]
    except KeyError:
        available = ", ".join(sorted(EXPORTERS))
        raise KeyError(f"Unknown export format '{fmt}'. Available: {available}") from None
    return exporter(events, notify)
