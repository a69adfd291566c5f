"""
Pytest configuration and shared fixtures.
"""

from __future__ import annotations

import inspect
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import httpx
import pytest

from portal_calendar.client import PortalClient
from portal_calendar.orchestrator import CalendarOrchestrator

BASE_URL = "http://portal.test/api"

WINDOW_START = datetime(2026, 2, 1, tzinfo=timezone.utc)
WINDOW_END = datetime(2026, 2, 28, 23, 59, 59, tzinfo=timezone.utc)
NOW = datetime(2026, 2, 15, 12, 0, tzinfo=timezone.utc)

# Route value meaning "connection refused".
DOWN = object()


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class PortalStub:
    """``httpx.MockTransport`` handler serving canned portal responses.

    ``routes`` maps API paths (without the ``/api`` prefix) to a JSON body,
    an ``httpx.Response``, :data:`DOWN`, or a (possibly async) callable
    returning one of those.  Unknown paths answer 404.
    """

    def __init__(self, routes: dict | None = None) -> None:
        self.routes = dict(routes or {})
        self.calls: list[httpx.Request] = []
        self.all_down = False

    def paths(self) -> list[str]:
        return [r.url.path.removeprefix("/api") for r in self.calls]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if self.all_down:
            raise httpx.ConnectError("connection refused", request=request)
        path = request.url.path.removeprefix("/api")
        route = self.routes.get(path)
        if callable(route):
            route = route(request)
            if inspect.isawaitable(route):
                route = await route
        if route is None:
            return httpx.Response(404, json={"success": False, "message": "Not found"})
        if route is DOWN:
            raise httpx.ConnectError("connection refused", request=request)
        if isinstance(route, httpx.Response):
            return route
        return httpx.Response(200, json=route)


def build_client(stub: PortalStub) -> PortalClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(stub))
    return PortalClient(BASE_URL, token="secret", http_client=http)


def build_orchestrator(stub: PortalStub, **kwargs) -> CalendarOrchestrator:
    kwargs.setdefault("sleep", AsyncMock())
    kwargs.setdefault("clock", FakeClock())
    kwargs.setdefault("now", lambda: NOW)
    kwargs.setdefault("production", False)
    return CalendarOrchestrator(build_client(stub), **kwargs)


# -----------------------------------------------------------------------
# Sample portal records
# -----------------------------------------------------------------------

SAMPLE_USERS = [
    {
        "_id": "u1",
        "name": "Alice Seeker",
        "email": "alice@example.com",
        "role": "jobSeeker",
        "status": "approved",
        "createdAt": "2026-02-03T09:00:00Z",
        "professionalInfo": {"resume": "https://cdn.example.com/alice.pdf"},
    },
    {
        "_id": "u2",
        "name": "Bob Trainer",
        "email": "bob@example.com",
        "role": {"name": "Trainer"},
        "isApproved": False,
        "createdAt": "2026-02-04T09:00:00Z",
        "professionalInfo": {
            "resume": "https://cdn.example.com/bob.pdf",
            "resumeUploadedAt": "2026-02-10T14:30:00+02:00",
        },
    },
    {
        "_id": "u3",
        "name": "Carol Employer",
        "email": "carol@example.com",
        "role": "employer",
        "status": "approved",
        "createdAt": "2026-02-05T09:00:00Z",
    },
]

SAMPLE_JOBS = [
    {
        "_id": "j1",
        "title": "Frontend Developer",
        "company": {"name": "Acme"},
        "status": "approved",
        "createdAt": "2026-02-02T08:00:00Z",
        "applicationDeadline": "2026-02-20T17:00:00Z",
    },
    {
        "_id": "j2",
        "title": "Data Analyst",
        "status": "pending",
        "createdAt": "2026-01-15T08:00:00Z",
        "applicationDeadline": "2026-02-25T17:00:00Z",
    },
    {
        "_id": "j3",
        "title": "Welding Trainer",
        "status": "approved",
        "createdAt": "2026-02-10T08:00:00Z",
    },
]

SAMPLE_APPLICATIONS = [
    {
        "_id": "a1",
        "status": "Shortlisted",
        "job": "j1",
        "user": {"_id": "u1", "name": "Alice Seeker", "email": "alice@example.com", "role": "jobSeeker"},
        "createdAt": "2026-02-05T10:00:00Z",
        "interviewDate": "2026-02-12T11:00:00Z",
    },
    {
        "_id": "a2",
        "status": "pending",
        "job": {"_id": "j3", "title": "Welding Trainer"},
        "user": "u9",
        "createdAt": "2026-02-06T10:00:00Z",
    },
]


def portal_routes() -> dict:
    """A healthy portal: first user endpoint, jobs and applications all answer."""
    return {
        "/admin/users": {"success": True, "data": SAMPLE_USERS, "total": len(SAMPLE_USERS)},
        "/jobs": {"success": True, "data": SAMPLE_JOBS},
        "/applications": {"success": True, "data": {"applications": SAMPLE_APPLICATIONS}},
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def stub() -> PortalStub:
    return PortalStub(portal_routes())
