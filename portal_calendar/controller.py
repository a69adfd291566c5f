"""Headless controller for the admin calendar view.

Holds the state the view renders (date range, filters, events, pagination,
loading/error flags, notices, the selected event) and turns user actions into
orchestrator fetches:

- date-range changes are debounced,
- filter changes fetch immediately from page 1 and are persisted,
- a periodic refresh runs while the view is visible,
- a watchdog clears a loading state that hangs.

Every timer is an asyncio task owned by the controller and cancelled by
:meth:`CalendarController.close`.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from typing import Any

from . import config
from .batching import BatchRenderer, Visibility
from .cache import make_cache_key
from .events import apply_filters, make_custom_event, parse_timestamp, sort_events
from .export import export_events
from .models import CalendarEvent, Filters, Notice, Pagination
from .orchestrator import CalendarFetchError, CalendarOrchestrator

logger = logging.getLogger(__name__)

CUSTOM_EVENTS_STORAGE_KEY = "adminCalendarCustomEvents"

_FILTER_FIELDS = {
    "status": "status",
    "role": "role",
    "eventType": "event_type",
    "event_type": "event_type",
    "jobId": "job_id",
    "job_id": "job_id",
}


def month_range(day: date) -> tuple[datetime, datetime]:
    """First and last instant (UTC) of the month containing *day*."""
    start = datetime(day.year, day.month, 1, tzinfo=timezone.utc)
    if day.month == 12:
        next_month = datetime(day.year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        next_month = datetime(day.year, day.month + 1, 1, tzinfo=timezone.utc)
    return start, next_month - timedelta(microseconds=1)


class LocalStore:
    """Small JSON key/value file standing in for browser local storage."""

    def __init__(self, path: str = config.DEFAULT_STORE_PATH) -> None:
        self.path = path
        self._data = self._read()

    def _read(self) -> dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable store %s: %s", self.path, exc)
            return {}
        return raw if isinstance(raw, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp = f"{self.path}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2, sort_keys=True)
        os.replace(tmp, self.path)


class CalendarController:
    """State and actions of one calendar view."""

    def __init__(
        self,
        orchestrator: CalendarOrchestrator | None = None,
        *,
        store: LocalStore | None = None,
        visibility: Visibility | None = None,
        renderer: BatchRenderer | None = None,
        today: date | None = None,
        debounce: float = config.DEBOUNCE_SECONDS,
        refresh_interval: float = config.REFRESH_INTERVAL_SECONDS,
        min_refresh_gap: float = config.MIN_REFRESH_GAP_SECONDS,
        watchdog_timeout: float = config.LOADING_WATCHDOG_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_notice: Callable[[Notice], None] | None = None,
        on_batch: Callable[[list[CalendarEvent]], None] | None = None,
    ) -> None:
        self.orchestrator = orchestrator or CalendarOrchestrator()
        self.store = store or LocalStore()
        self.visibility = visibility or Visibility()
        self.renderer = renderer or BatchRenderer(visibility=self.visibility)
        self.debounce = debounce
        self.refresh_interval = refresh_interval
        self.min_refresh_gap = min_refresh_gap
        self.watchdog_timeout = watchdog_timeout
        self._clock = clock
        self._sleep = sleep
        self._on_notice = on_notice
        self._on_batch = on_batch

        self.date_range = month_range(today or datetime.now(timezone.utc).date())
        self.view = "dayGridMonth"
        self.filters = self._load_filters()
        self.pagination = Pagination(limit=self.orchestrator.page_limit)
        self.all_events: tuple[CalendarEvent, ...] = ()
        self.events: list[CalendarEvent] = []      # rendered so far
        self.loading = False
        self.error: str | None = None
        self.notices: list[Notice] = []
        self.selected_event: CalendarEvent | None = None
        self.last_refresh: float | None = None
        self.custom_events: list[CalendarEvent] = self._load_custom_events()

        self._fetch_task: asyncio.Task | None = None
        self._debounce_task: asyncio.Task | None = None
        self._refresh_task: asyncio.Task | None = None
        self._watchdog_task: asyncio.Task | None = None
        self._render_task: asyncio.Task | None = None

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        """Load the initial range and start the periodic refresh."""
        if self._refresh_task is None:
            self._refresh_task = asyncio.ensure_future(self._refresh_loop())
        await self.load()

    async def close(self) -> None:
        tasks = [
            t for t in (
                self._debounce_task,
                self._refresh_task,
                self._watchdog_task,
                self._render_task,
                self._fetch_task,
            )
            if t is not None and not t.done()
        ]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._debounce_task = self._refresh_task = self._watchdog_task = None
        self._render_task = self._fetch_task = None
        await self.orchestrator.aclose()

    # ------------------------------------------------------------------ #
    # User actions
    # ------------------------------------------------------------------ #

    def set_date_range(self, start: datetime, end: datetime, view: str | None = None) -> None:
        """Record a new visible range and schedule a debounced reload."""
        s, e = parse_timestamp(start), parse_timestamp(end)
        if s is None or e is None or e < s:
            raise ValueError(f"Invalid date range: {start!r} - {end!r}")
        self.date_range = (s, e)
        if view:
            self.view = view
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = asyncio.ensure_future(self._debounced_load())

    async def set_filter(self, name: str, value: str) -> None:
        """Change one filter, persist it and reload from page 1."""
        try:
            field_name = _FILTER_FIELDS[name]
        except KeyError:
            raise KeyError(f"Unknown filter '{name}'") from None
        self.filters = replace(self.filters, **{field_name: value})
        self.store.set(config.FILTERS_STORAGE_KEY, self.filters.to_dict())
        await self.load(page=1)

    async def reset_filters(self) -> None:
        self.filters = Filters()
        self.store.set(config.FILTERS_STORAGE_KEY, self.filters.to_dict())
        await self.load(page=1)

    def set_visible(self, visible: bool) -> None:
        self.visibility.set(visible)

    async def retry(self) -> None:
        """Manual retry offered with error notices; bypasses the cache."""
        await self.load(force=True, page=self.pagination.page)

    async def load_more(self) -> None:
        if self.pagination.has_more and not self.loading:
            await self.load(page=self.pagination.page + 1, append=True)

    def select_event(self, event_id: str) -> CalendarEvent | None:
        self.selected_event = next(
            (ev for ev in self.all_events if ev.id == event_id), None,
        )
        return self.selected_event

    def close_event(self) -> None:
        self.selected_event = None

    async def add_custom_event(self, title: str, start: datetime, *, status: str = "") -> CalendarEvent:
        ev = make_custom_event(title, start, event_id=uuid.uuid4().hex, status=status)
        self.custom_events.append(ev)
        self._save_custom_events()
        await self._show(self._merge(self.all_events))
        return ev

    async def remove_custom_event(self, event_id: str) -> bool:
        before = len(self.custom_events)
        self.custom_events = [ev for ev in self.custom_events if ev.id != event_id]
        if len(self.custom_events) == before:
            return False
        self._save_custom_events()
        await self._show(tuple(ev for ev in self.all_events if ev.id != event_id))
        return True

    def export(self, fmt: str) -> str | None:
        """Serialise every loaded event; ``None`` after a notice when empty."""
        return export_events(self.all_events, fmt, notify=self.notify)

    def notify(self, notice: Notice) -> None:
        self.notices.append(notice)
        log = logger.error if notice.level == "error" else logger.info
        log("notice: %s", notice.message)
        if self._on_notice is not None:
            self._on_notice(notice)

    # ------------------------------------------------------------------ #
    # Loading
    # ------------------------------------------------------------------ #

    async def load(self, *, force: bool = False, page: int = 1, append: bool = False) -> None:
        """Fetch the current range/filters and render the result.

        A newer call supersedes (cancels) an older one still in flight; the
        superseded call returns without touching state.
        """
        if self._fetch_task is not None and not self._fetch_task.done():
            self._fetch_task.cancel()
        start, end = self.date_range
        task = asyncio.ensure_future(
            self.orchestrator.fetch_events(
                start, end, self.filters, page=page, force_refresh=force,
            )
        )
        self._fetch_task = task
        self.loading = True
        self._arm_watchdog(task, page)

        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task is not self._fetch_task or task.cancelled():
            return
        self._disarm_watchdog()
        self.loading = False

        exc = task.exception()
        if exc is not None:
            if not isinstance(exc, CalendarFetchError):
                raise exc
            self.error = str(exc)
            self.notify(Notice("error", "Failed to load calendar data.", action="retry"))
            return

        result = task.result()
        self.error = None
        self.pagination = result.pagination
        self.last_refresh = self._clock()
        for warning in result.warnings:
            self.notify(Notice("warning", warning, action="retry" if result.stale else ""))
        events = result.events
        if append:
            seen = {ev.id for ev in self.all_events}
            events = self.all_events + tuple(ev for ev in events if ev.id not in seen)
        await self._show(self._merge(events))

    async def _debounced_load(self) -> None:
        await self._sleep(self.debounce)
        try:
            await self.load()
        except Exception:
            logger.exception("Debounced load failed")
            self._load_failed()

    async def _refresh_loop(self) -> None:
        while True:
            await self._sleep(self.refresh_interval)
            await self.visibility.wait_visible()
            if (
                self.last_refresh is not None
                and self._clock() - self.last_refresh < self.min_refresh_gap
            ):
                continue
            if self.loading:
                continue
            logger.debug("periodic refresh")
            try:
                await self.load(force=True)
            except Exception:
                logger.exception("Periodic refresh failed")
                self._load_failed()

    def _load_failed(self) -> None:
        self.loading = False
        self.error = "Failed to refresh calendar data."
        self.notify(Notice("error", self.error, action="retry"))

    # ------------------------------------------------------------------ #
    # Watchdog
    # ------------------------------------------------------------------ #

    def _arm_watchdog(self, task: asyncio.Task, page: int) -> None:
        self._disarm_watchdog()
        self._watchdog_task = asyncio.ensure_future(self._watch(task, page))

    def _disarm_watchdog(self) -> None:
        if self._watchdog_task is not None and not self._watchdog_task.done():
            self._watchdog_task.cancel()
        self._watchdog_task = None

    async def _watch(self, task: asyncio.Task, page: int) -> None:
        await self._sleep(self.watchdog_timeout)
        if task.done() or task is not self._fetch_task:
            return
        logger.warning("Loading stuck for %.0fs; cancelling fetch", self.watchdog_timeout)
        self._fetch_task = None
        task.cancel()
        self.loading = False

        start, end = self.date_range
        key = make_cache_key(start, end, self.filters, page, self.orchestrator.page_limit)
        entry = self.orchestrator.cache.latest(prefer_key=key)
        if entry is not None:
            self.notify(Notice(
                "warning", "Loading took too long; showing cached data.", action="retry",
            ))
            await self._show(self._merge(entry.events))
        else:
            self.error = "Loading timed out."
            self.notify(Notice("error", "Loading timed out.", action="retry"))

    # ------------------------------------------------------------------ #
    # Rendering
    # ------------------------------------------------------------------ #

    def _merge(self, events: tuple[CalendarEvent, ...]) -> tuple[CalendarEvent, ...]:
        """Fetched events plus custom events in range, without duplicates."""
        start, end = self.date_range
        custom_ids = {ev.id for ev in self.custom_events}
        fetched = [ev for ev in events if ev.id not in custom_ids]
        custom = [ev for ev in self.custom_events if start <= ev.start <= end]
        return tuple(sort_events(fetched + apply_filters(custom, self.filters)))

    async def _show(self, events: tuple[CalendarEvent, ...]) -> None:
        """Replace the loaded events and render them batch by batch.

        The first batch is shown before returning; the rest follow from a
        background task.
        """
        if self._render_task is not None and not self._render_task.done():
            self._render_task.cancel()
        self.all_events = events
        self.events = []
        batches = self.renderer.stream(events, visible_range=self.date_range)
        first = await anext(batches)
        self._append_batch(first)
        self._render_task = asyncio.ensure_future(self._drain(batches))

    async def _drain(self, batches) -> None:
        try:
            async for batch in batches:
                self._append_batch(batch)
        finally:
            await batches.aclose()

    def _append_batch(self, batch: list[CalendarEvent]) -> None:
        self.events.extend(batch)
        if self._on_batch is not None:
            self._on_batch(batch)

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #

    def _load_filters(self) -> Filters:
        raw = self.store.get(config.FILTERS_STORAGE_KEY)
        if not isinstance(raw, dict):
            return Filters()
        try:
            return Filters.from_dict(raw)
        except ValueError as exc:
            logger.warning("Ignoring stored filters: %s", exc)
            return Filters()

    def _load_custom_events(self) -> list[CalendarEvent]:
        events: list[CalendarEvent] = []
        for raw in self.store.get(CUSTOM_EVENTS_STORAGE_KEY) or []:
            try:
                events.append(make_custom_event(
                    raw["title"], raw["start"],
                    event_id=raw["id"].removeprefix("custom-"),
                    status=raw.get("status") or "",
                ))
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                logger.warning("Ignoring stored custom event %r: %s", raw, exc)
        return events

    def _save_custom_events(self) -> None:
        self.store.set(CUSTOM_EVENTS_STORAGE_KEY, [
            {
                "id": ev.id,
                "title": ev.title,
                "start": ev.start.isoformat(),
                "status": ev.details.status,
            }
            for ev in self.custom_events
        ])
