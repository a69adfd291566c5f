"""Progressive rendering of large event lists."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from datetime import datetime
from typing import Any

from . import config
from .models import CalendarEvent


class Visibility:
    """Tracks whether the host view is visible.

    Batch emission and periodic refreshes wait on :meth:`wait_visible`, so
    nothing is produced for a hidden tab.
    """

    def __init__(self, visible: bool = True) -> None:
        self._event = asyncio.Event()
        if visible:
            self._event.set()

    @property
    def visible(self) -> bool:
        return self._event.is_set()

    def set(self, visible: bool) -> None:
        if visible:
            self._event.set()
        else:
            self._event.clear()

    async def wait_visible(self) -> None:
        await self._event.wait()


def prioritize(
    events: Iterable[CalendarEvent],
    visible_start: datetime,
    visible_end: datetime,
) -> list[CalendarEvent]:
    """Events inside ``[visible_start, visible_end]`` first, order otherwise kept."""
    inside: list[CalendarEvent] = []
    outside: list[CalendarEvent] = []
    for ev in events:
        (inside if visible_start <= ev.start <= visible_end else outside).append(ev)
    return inside + outside


class BatchRenderer:
    """Emit an initial batch at once and reveal the rest on a timer."""

    def __init__(
        self,
        *,
        batch_size: int = config.BATCH_SIZE,
        interval: float = config.BATCH_INTERVAL_SECONDS,
        visibility: Visibility | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.batch_size = batch_size
        self.interval = interval
        self.visibility = visibility or Visibility()
        self._sleep = sleep

    async def stream(
        self,
        events: Iterable[CalendarEvent],
        *,
        visible_range: tuple[datetime, datetime] | None = None,
    ) -> AsyncIterator[list[CalendarEvent]]:
        """Yield batches of at most ``batch_size`` events.

        Lists that fit in one batch are yielded whole (an empty list yields a
        single empty batch).  Later batches wait for the interval and for the
        view to be visible.
        """
        ordered = (
            prioritize(events, *visible_range) if visible_range else list(events)
        )
        if len(ordered) <= self.batch_size:
            yield ordered
            return

        yield ordered[: self.batch_size]
        for offset in range(self.batch_size, len(ordered), self.batch_size):
            await self._sleep(self.interval)
            await self.visibility.wait_visible()
            yield ordered[offset : offset + self.batch_size]

    async def render(
        self,
        events: Iterable[CalendarEvent],
        sink: Callable[[list[CalendarEvent]], Any],
        *,
        visible_range: tuple[datetime, datetime] | None = None,
    ) -> int:
        """Feed every batch to *sink* (sync or async); return events emitted."""
        emitted = 0
        async for batch in self.stream(events, visible_range=visible_range):
            result = sink(batch)
            if inspect.isawaitable(result):
                await result
            emitted += len(batch)
        return emitted
