"""Fetch calendar events with caching, endpoint probing, retries and fallbacks.

One fetch cycle runs through these steps:

1. Return a fresh cache entry for the request key, unless a refresh is forced.
2. Probe each source's ordered fetcher list; the first fetcher returning
   records wins.  Users fall back to the dashboard summary afterwards.
3. Outside production, substitute sample records when a source is empty.
4. Transport failures retry the whole cycle with exponential backoff.
5. After the last attempt, serve any cached entry (flagged stale) or raise
   :class:`CalendarFetchError`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from . import config
from .cache import EventCache, make_cache_key
from .client import PortalClient, PortalResponseError, PortalTransportError
from .events import (
    apply_filters,
    create_application_events,
    create_job_events,
    create_resume_events,
    index_jobs,
    parse_timestamp,
    sort_events,
)
from .fetchers import (
    APPLICATION_FETCHERS,
    JOB_FETCHERS,
    USER_FALLBACK_FETCHERS,
    USER_FETCHERS,
    BaseFetcher,
    FetchedPage,
    MockFetcher,
)
from .models import (
    BuildReport,
    CacheEntry,
    CalendarEvent,
    EventType,
    FetchResult,
    Filters,
    Pagination,
)

logger = logging.getLogger(__name__)

MOCK_DATA_WARNING = "The portal returned no data; showing sample records."
STALE_DATA_WARNING = "Could not reach the portal; showing cached data that may be stale."


class CalendarFetchError(RuntimeError):
    """Every attempt failed and there is no cached data to fall back on."""

    def __init__(self, message: str, *, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(message)


async def probe(
    client: PortalClient,
    fetchers: Sequence[BaseFetcher],
    params: dict[str, Any],
) -> tuple[FetchedPage | None, list[PortalTransportError]]:
    """Try *fetchers* in order and return the first non-empty page.

    Empty or unusable responses move on to the next fetcher.  Transport
    errors do too, but are collected so the caller can decide to retry.
    """
    transport_errors: list[PortalTransportError] = []
    for fetcher in fetchers:
        try:
            page = await fetcher.fetch(client, params)
        except PortalTransportError as exc:
            logger.warning("[%s] transport error: %s", fetcher.name, exc)
            transport_errors.append(exc)
            continue
        except (PortalResponseError, ValueError) as exc:
            logger.info("[%s] unusable response: %s", fetcher.name, exc)
            continue
        if page.records:
            logger.debug("[%s] returned %d records", fetcher.name, len(page.records))
            return page, transport_errors
        logger.info("[%s] returned no records", fetcher.name)
    return None, transport_errors


@dataclass(frozen=True, slots=True)
class _Source:
    kind: str                                  # "users", "jobs", "applications"
    fetchers: tuple[BaseFetcher, ...]
    fallbacks: tuple[BaseFetcher, ...] = ()


@dataclass(slots=True)
class _InFlight:
    task: asyncio.Task
    waiters: int = 0


class CalendarOrchestrator:
    """Owns the cache, pagination and error/backoff state of calendar fetches."""

    def __init__(
        self,
        client: PortalClient | None = None,
        *,
        cache: EventCache | None = None,
        production: bool | None = None,
        max_retries: int = config.MAX_RETRIES,
        base_backoff: float = config.BASE_BACKOFF_SECONDS,
        page_limit: int = config.DEFAULT_PAGE_LIMIT,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] | None = None,
        user_fetchers: Sequence[BaseFetcher] = USER_FETCHERS,
        user_fallback_fetchers: Sequence[BaseFetcher] = USER_FALLBACK_FETCHERS,
        job_fetchers: Sequence[BaseFetcher] = JOB_FETCHERS,
        application_fetchers: Sequence[BaseFetcher] = APPLICATION_FETCHERS,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.client = client or PortalClient()
        self.cache = cache or EventCache(clock=clock)
        self.production = config.is_production() if production is None else production
        self.max_retries = max_retries
        self.base_backoff = base_backoff
        self.page_limit = page_limit
        self.pagination = Pagination(limit=page_limit)
        self.error_count = 0
        self.backoff_until = 0.0

        self._sleep = sleep
        self._clock = clock
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._sources = {
            "users": _Source("users", tuple(user_fetchers), tuple(user_fallback_fetchers)),
            "jobs": _Source("jobs", tuple(job_fetchers)),
            "applications": _Source("applications", tuple(application_fetchers)),
        }
        self._inflight: dict[str, _InFlight] = {}

    # ------------------------------------------------------------------ #
    # Public
    # ------------------------------------------------------------------ #

    async def fetch_events(
        self,
        start: datetime,
        end: datetime,
        filters: Filters | None = None,
        *,
        page: int = 1,
        limit: int | None = None,
        force_refresh: bool = False,
    ) -> FetchResult:
        """Events for ``[start, end]`` under *filters*.

        Concurrent calls for the same key share one network cycle.  Cancelling
        the last caller waiting on a cycle cancels the cycle itself.
        """
        filters = filters or Filters()
        limit = limit or self.page_limit
        start, end = self._window(start, end)
        key = make_cache_key(start, end, filters, page, limit)

        if not force_refresh:
            entry = self.cache.get(key)
            if entry is not None and self.cache.is_fresh(entry):
                logger.debug("cache hit for %s", key)
                return FetchResult(
                    events=entry.events,
                    total=entry.total,
                    pagination=self._update_pagination(page, limit, entry.total),
                    source="cache",
                    from_cache=True,
                )

        inflight = self._inflight.get(key)
        if inflight is None:
            task = asyncio.ensure_future(
                self._fetch_with_retry(key, start, end, filters, page, limit)
            )
            inflight = self._inflight[key] = _InFlight(task)
            task.add_done_callback(lambda t, k=key: self._forget(k, t))

        inflight.waiters += 1
        try:
            return await asyncio.shield(inflight.task)
        except asyncio.CancelledError:
            if inflight.waiters == 1 and not inflight.task.done():
                inflight.task.cancel()
            raise
        finally:
            inflight.waiters -= 1

    def in_flight(self) -> int:
        return len(self._inflight)

    async def aclose(self) -> None:
        """Cancel outstanding cycles and close the HTTP client."""
        tasks = [f.task for f in self._inflight.values()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.client.aclose()

    # ------------------------------------------------------------------ #
    # Fetch cycle
    # ------------------------------------------------------------------ #

    def _count_failure(self, state: RetryCallState) -> None:
        self.error_count += 1

    def _note_backoff(self, state: RetryCallState) -> None:
        delay = state.next_action.sleep if state.next_action else 0.0
        self.backoff_until = self._clock() + delay
        logger.warning(
            "Fetch attempt %d/%d failed (%s); retrying in %.1fs",
            state.attempt_number, self.max_retries, state.outcome.exception(), delay,
        )

    async def _fetch_with_retry(
        self,
        key: str,
        start: datetime,
        end: datetime,
        filters: Filters,
        page: int,
        limit: int,
    ) -> FetchResult:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.base_backoff),
            retry=retry_if_exception_type(PortalTransportError),
            sleep=self._sleep,
            after=self._count_failure,
            before_sleep=self._note_backoff,
            reraise=True,
        )
        try:
            result = await retrying(self._fetch_once, key, start, end, filters, page, limit)
        except PortalTransportError as last_exc:
            logger.error("All %d fetch attempts failed: %s", self.max_retries, last_exc)
            entry = self.cache.latest(prefer_key=key)
            if entry is not None:
                return FetchResult(
                    events=entry.events,
                    total=entry.total,
                    pagination=replace(self.pagination),
                    source="stale-cache",
                    from_cache=True,
                    stale=True,
                    warnings=(STALE_DATA_WARNING,),
                )
            raise CalendarFetchError(
                f"Failed to load calendar data after {self.max_retries} attempts: {last_exc}",
                attempts=self.max_retries,
            ) from last_exc
        self.error_count = 0
        self.backoff_until = 0.0
        return result

    async def _fetch_once(
        self,
        key: str,
        start: datetime,
        end: datetime,
        filters: Filters,
        page: int,
        limit: int,
    ) -> FetchResult:
        params = self._params(start, end, filters, page, limit)
        warnings: list[str] = []
        used_mock = False
        total = 0
        events: list[CalendarEvent] = []
        jobs_by_id: dict = {}

        for source in self._sources_for(filters):
            fetched, is_mock = await self._load_source(source, params)
            used_mock = used_mock or is_mock
            total = max(total, fetched.total)
            report = BuildReport()

            if source.kind == "users":
                events += create_resume_events(
                    fetched.records, start, end, now=self._now(), report=report,
                )
            elif source.kind == "jobs":
                jobs_by_id = index_jobs(fetched.records)
                events += create_job_events(fetched.records, start, end, report=report)
            else:
                events += create_application_events(
                    fetched.records, start, end, jobs_by_id=jobs_by_id, report=report,
                )
            if report.warning:
                warnings.append(f"Some {source.kind} could not be shown: {report.warning}")

        if used_mock:
            warnings.insert(0, MOCK_DATA_WARNING)
        events = sort_events(apply_filters(events, filters))
        entry = CacheEntry(
            key=key, events=tuple(events), total=total, timestamp=self._clock(),
        )
        self.cache.put(key, entry)
        return FetchResult(
            events=entry.events,
            total=total,
            pagination=self._update_pagination(page, limit, total),
            source="mock" if used_mock else "network",
            warnings=tuple(warnings),
        )

    async def _load_source(
        self, source: _Source, params: dict[str, Any],
    ) -> tuple[FetchedPage, bool]:
        fetched, errors = await probe(self.client, source.fetchers, params)
        if fetched is None and source.fallbacks:
            logger.info("[%s] primary endpoints empty; trying fallbacks", source.kind)
            fetched, more_errors = await probe(self.client, source.fallbacks, params)
            errors += more_errors
        if fetched is not None:
            return fetched, False
        if errors:
            raise errors[-1]
        if self.production:
            logger.info("[%s] no records", source.kind)
            return FetchedPage(), False
        logger.warning("[%s] no records; substituting sample data", source.kind)
        return await MockFetcher(source.kind).fetch(self.client, params), True

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _sources_for(self, filters: Filters) -> list[_Source]:
        sources: list[_Source] = []
        if filters.wants(EventType.RESUME):
            sources.append(self._sources["users"])
        if filters.wants(EventType.NEW_JOB) or filters.wants(EventType.DEADLINE):
            sources.append(self._sources["jobs"])
        if filters.wants(EventType.INTERVIEW):
            sources.append(self._sources["applications"])
        return sources

    @staticmethod
    def _params(
        start: datetime, end: datetime, filters: Filters, page: int, limit: int,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "page": page,
            "limit": limit,
            "sort": config.DEFAULT_SORT,
            "populate": False,
            "strictPopulate": False,
            "startDate": start.isoformat(),
            "endDate": end.isoformat(),
        }
        if filters.status != "all":
            params["status"] = filters.status
        if filters.role != "all":
            params["role"] = filters.role
        if filters.job_id != "all":
            params["jobId"] = filters.job_id
        return params

    @staticmethod
    def _window(start: datetime, end: datetime) -> tuple[datetime, datetime]:
        s, e = parse_timestamp(start), parse_timestamp(end)
        if s is None or e is None:
            raise ValueError(f"Invalid date range: {start!r} - {end!r}")
        if e < s:
            raise ValueError("end must not be before start")
        return s, e

    def _update_pagination(self, page: int, limit: int, total: int) -> Pagination:
        p = self.pagination
        p.page, p.limit, p.total = page, limit, total
        p.has_more = page * limit < total
        return Pagination(page=p.page, limit=p.limit, has_more=p.has_more, total=p.total)

    def _forget(self, key: str, task: asyncio.Task) -> None:
        current = self._inflight.get(key)
        if current is not None and current.task is task:
            del self._inflight[key]
        if not task.cancelled() and task.exception() is not None:
            # Retrieved here so an unawaited failure does not warn at shutdown.
            logger.debug("fetch for %s failed: %s", key, task.exception())
