"""Tests for progressive batch rendering."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from portal_calendar.batching import BatchRenderer, Visibility, prioritize
from portal_calendar.models import CalendarEvent, EventType

_BASE = datetime(2026, 2, 1, tzinfo=timezone.utc)


def _events(n: int) -> list[CalendarEvent]:
    return [
        CalendarEvent(
            id=f"ev-{i}",
            title=f"Event {i}",
            start=_BASE + timedelta(hours=i),
            type=EventType.NEW_JOB,
            color="#2ECC71",
        )
        for i in range(n)
    ]


async def _collect(renderer: BatchRenderer, events, **kwargs) -> list[list[CalendarEvent]]:
    return [batch async for batch in renderer.stream(events, **kwargs)]


class TestStream:
    """Tests for batch sizes and pacing."""

    @pytest.mark.asyncio
    async def test_large_list_split(self) -> None:
        sleep = AsyncMock()
        renderer = BatchRenderer(batch_size=200, interval=0.1, sleep=sleep)
        batches = await _collect(renderer, _events(450))
        assert [len(b) for b in batches] == [200, 200, 50]
        assert [c.args[0] for c in sleep.await_args_list] == [0.1, 0.1]
        assert [ev.id for b in batches for ev in b] == [f"ev-{i}" for i in range(450)]

    @pytest.mark.asyncio
    async def test_small_list_single_batch(self) -> None:
        sleep = AsyncMock()
        batches = await _collect(BatchRenderer(sleep=sleep), _events(150))
        assert [len(b) for b in batches] == [150]
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_list_yields_one_empty_batch(self) -> None:
        assert await _collect(BatchRenderer(), []) == [[]]

    @pytest.mark.asyncio
    async def test_visible_range_first(self) -> None:
        events = _events(6)
        renderer = BatchRenderer(batch_size=2, sleep=AsyncMock())
        visible = (events[4].start, events[5].start)
        batches = await _collect(renderer, events, visible_range=visible)
        assert [ev.id for ev in batches[0]] == ["ev-4", "ev-5"]

    @pytest.mark.asyncio
    async def test_paused_while_hidden(self) -> None:
        visibility = Visibility(visible=False)
        renderer = BatchRenderer(batch_size=2, visibility=visibility, sleep=AsyncMock())
        seen: list[int] = []

        async def consume() -> None:
            async for batch in renderer.stream(_events(5)):
                seen.append(len(batch))

        task = asyncio.ensure_future(consume())
        for _ in range(5):
            await asyncio.sleep(0)
        # The first batch is immediate; later ones wait for visibility.
        assert seen == [2]

        visibility.set(True)
        await task
        assert seen == [2, 2, 1]

    def test_invalid_batch_size(self) -> None:
        with pytest.raises(ValueError):
            BatchRenderer(batch_size=0)


class TestRender:
    @pytest.mark.asyncio
    async def test_sync_sink(self) -> None:
        received: list[list[CalendarEvent]] = []
        renderer = BatchRenderer(batch_size=3, sleep=AsyncMock())
        count = await renderer.render(_events(7), received.append)
        assert count == 7
        assert [len(b) for b in received] == [3, 3, 1]

    @pytest.mark.asyncio
    async def test_async_sink(self) -> None:
        sink = AsyncMock()
        renderer = BatchRenderer(batch_size=3, sleep=AsyncMock())
        assert await renderer.render(_events(4), sink) == 4
        assert sink.await_count == 2


class TestPrioritize:
    def test_stable_within_groups(self) -> None:
        events = _events(5)
        ordered = prioritize(events, events[1].start, events[2].start)
        assert [ev.id for ev in ordered] == ["ev-1", "ev-2", "ev-0", "ev-3", "ev-4"]

    def test_nothing_visible_keeps_order(self) -> None:
        events = _events(3)
        far = _BASE + timedelta(days=30)
        assert prioritize(events, far, far) == events
