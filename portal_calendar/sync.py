"""Mirror admin calendar events into a Google Calendar.

Events are fetched through :class:`CalendarOrchestrator` (so the same
probing, fallbacks and filters apply as in the admin view) and upserted into
the calendar named by ``GOOGLE_CALENDAR_ID``.  Each Google event carries the
portal event id in a private extended property, which is how re-runs find
and update what an earlier run created.

Run with:  python -m portal_calendar.sync
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from datetime import datetime, timedelta, timezone

from google.oauth2 import service_account
from googleapiclient.discovery import build

from .controller import month_range
from .models import CalendarEvent, EventType, Filters
from .orchestrator import CalendarOrchestrator

# ---------------------------------------------------------------------------
# Configuration constants
# ---------------------------------------------------------------------------
CALENDAR_TIMEZONE = "UTC"
EVENT_DURATION_MINUTES = 60
REMINDER_MINUTES = [60, 15]

# Google Calendar colorId per event type.
_TYPE_COLOR: dict[EventType, str] = {
    EventType.RESUME: "6",      # Tangerine
    EventType.INTERVIEW: "3",   # Grape
    EventType.NEW_JOB: "10",    # Basil
    EventType.DEADLINE: "11",   # Tomato
    EventType.CUSTOM: "8",      # Graphite
}

# Only interviews and deadlines get reminders.
_REMINDER_TYPES = {EventType.INTERVIEW, EventType.DEADLINE}

# Extended property key used for de-duplication in Google Calendar.
_EXT_PROP_KEY = "portal_event_id"

SCOPES = ["https://www.googleapis.com/auth/calendar"]


# ---------------------------------------------------------------------------
# Google Calendar helpers
# ---------------------------------------------------------------------------

def build_calendar_service():
    """Return an authenticated Google Calendar service using a service account."""
    sa_json = os.environ["GOOGLE_SA_JSON"]
    sa_info = json.loads(sa_json)
    credentials = service_account.Credentials.from_service_account_info(
        sa_info, scopes=SCOPES,
    )
    return build("calendar", "v3", credentials=credentials)


def _description(ev: CalendarEvent) -> str:
    d = ev.details
    lines = [f"Type: {ev.type.value}"]
    if d.status:
        lines.append(f"Status: {d.status}")
    if d.user is not None:
        who = d.user.name + (f" <{d.user.email}>" if d.user.email else "")
        lines.append(f"User: {who}")
    if d.job is not None:
        lines.append(f"Job: {d.job.title}" + (f" ({d.job.company})" if d.job.company else ""))
    if d.resume_url:
        lines.append(f"Resume: {d.resume_url}")
    return "\n".join(lines)


def build_gcal_event(ev: CalendarEvent) -> dict:
    """Convert a :class:`CalendarEvent` to a Google Calendar event body."""
    end = ev.start + timedelta(minutes=EVENT_DURATION_MINUTES)
    gcal: dict = {
        "summary": ev.title,
        "description": _description(ev),
        "start": {"dateTime": ev.start.isoformat(), "timeZone": CALENDAR_TIMEZONE},
        "end": {"dateTime": end.isoformat(), "timeZone": CALENDAR_TIMEZONE},
        "colorId": _TYPE_COLOR[ev.type],
        "extendedProperties": {
            "private": {
                _EXT_PROP_KEY: ev.id,
            }
        },
    }
    if ev.type in _REMINDER_TYPES:
        gcal["reminders"] = {
            "useDefault": False,
            "overrides": [
                {"method": "popup", "minutes": m} for m in REMINDER_MINUTES
            ],
        }
    return gcal


def get_existing_events(
    service, calendar_id: str, time_min: datetime, time_max: datetime,
) -> dict[str, str]:
    """Return a mapping of portal event id → Google Calendar event id."""
    mapping: dict[str, str] = {}
    page_token = None

    while True:
        result = (
            service.events()
            .list(
                calendarId=calendar_id,
                timeMin=time_min.isoformat(),
                timeMax=time_max.isoformat(),
                singleEvents=True,
                pageToken=page_token,
            )
            .execute()
        )
        for item in result.get("items", []):
            eid = (
                item.get("extendedProperties", {})
                .get("private", {})
                .get(_EXT_PROP_KEY)
            )
            if eid:
                mapping[eid] = item["id"]
        page_token = result.get("nextPageToken")
        if not page_token:
            break

    return mapping


def upsert_event(
    service, calendar_id: str, gcal_event: dict, existing: dict[str, str],
) -> str:
    """Create or update a Google Calendar event.  Returns ``'created'`` or ``'updated'``."""
    eid = gcal_event["extendedProperties"]["private"][_EXT_PROP_KEY]
    if eid in existing:
        service.events().update(
            calendarId=calendar_id,
            eventId=existing[eid],
            body=gcal_event,
        ).execute()
        return "updated"
    service.events().insert(
        calendarId=calendar_id,
        body=gcal_event,
    ).execute()
    return "created"


def sync_events(service, calendar_id: str, events: list[CalendarEvent]) -> tuple[int, int]:
    """Upsert *events*; return ``(created, updated)``."""
    if not events:
        return 0, 0
    time_min = min(ev.start for ev in events)
    time_max = max(ev.start for ev in events) + timedelta(minutes=EVENT_DURATION_MINUTES)
    existing = get_existing_events(service, calendar_id, time_min, time_max)
    print(f"Found {len(existing)} existing events in Google Calendar.")

    created = updated = 0
    for ev in events:
        gcal_event = build_gcal_event(ev)
        action = upsert_event(service, calendar_id, gcal_event, existing)
        if action == "created":
            created += 1
        else:
            updated += 1
        print(f"  [{action}] {gcal_event['summary']}")
    return created, updated


async def collect_events(
    start: datetime, end: datetime, filters: Filters,
) -> list[CalendarEvent]:
    """Fetch every page of events for ``[start, end]``."""
    orchestrator = CalendarOrchestrator()
    events: list[CalendarEvent] = []
    try:
        page = 1
        while True:
            result = await orchestrator.fetch_events(start, end, filters, page=page)
            for warning in result.warnings:
                print(f"Warning: {warning}")
            events.extend(result.events)
            if not result.pagination.has_more or result.source == "stale-cache":
                break
            page += 1
    finally:
        await orchestrator.aclose()
    unique: dict[str, CalendarEvent] = {}
    for ev in events:
        unique.setdefault(ev.id, ev)
    return list(unique.values())


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    calendar_id = os.environ["GOOGLE_CALENDAR_ID"]
    filters = Filters(event_type=os.environ.get("SYNC_EVENT_TYPE", "all"))

    start, end = month_range(datetime.now(timezone.utc).date())
    print(f"Fetching portal events from {start:%Y-%m-%d} to {end:%Y-%m-%d} ...")
    events = asyncio.run(collect_events(start, end, filters))
    print(f"Found {len(events)} events after filtering.")

    if not events:
        print("Nothing to sync.")
        return

    service = build_calendar_service()
    created, updated = sync_events(service, calendar_id, events)
    print(f"Done. Created: {created}, Updated: {updated}")


if __name__ == "__main__":
    main()
