"""Synthetic records used when the portal returns nothing outside production."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from ..client import PortalClient
from .base import BaseFetcher, FetchedPage


def _window_start(params: dict[str, Any]) -> datetime:
    raw = params.get("startDate") or ""
    try:
        dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        dt = datetime.now(timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso(dt: datetime) -> str:
    return dt.isoformat().replace("+00:00", "Z")


def mock_users(anchor: datetime) -> list[dict]:
    return [
        {
            "_id": "mock-user-1",
            "name": "Sample Job Seeker",
            "email": "seeker@example.com",
            "role": "jobSeeker",
            "status": "approved",
            "createdAt": _iso(anchor + timedelta(days=1)),
            "professionalInfo": {
                "resume": "https://example.com/resumes/mock-user-1.pdf",
                "resumeUploadedAt": _iso(anchor + timedelta(days=2, hours=10)),
            },
        },
        {
            "_id": "mock-user-2",
            "name": "Sample Trainer",
            "email": "trainer@example.com",
            "role": "trainer",
            "status": "pending",
            "createdAt": _iso(anchor + timedelta(days=4)),
            "professionalInfo": {
                "resume": "https://example.com/resumes/mock-user-2.pdf",
            },
        },
        {
            "_id": "mock-user-3",
            "name": "Sample Employer",
            "email": "employer@example.com",
            "role": "employer",
            "status": "approved",
            "createdAt": _iso(anchor + timedelta(days=6)),
        },
    ]


def mock_jobs(anchor: datetime) -> list[dict]:
    return [
        {
            "_id": "mock-job-1",
            "title": "Sample Frontend Developer",
            "company": {"name": "Example Co"},
            "status": "approved",
            "createdAt": _iso(anchor + timedelta(days=3, hours=9)),
            "applicationDeadline": _iso(anchor + timedelta(days=12, hours=17)),
        },
        {
            "_id": "mock-job-2",
            "title": "Sample Vocational Trainer",
            "company": "Example Training",
            "status": "pending",
            "createdAt": _iso(anchor + timedelta(days=5, hours=14)),
        },
    ]


def mock_applications(anchor: datetime) -> list[dict]:
    return [
        {
            "_id": "mock-application-1",
            "status": "shortlisted",
            "job": {"_id": "mock-job-1", "title": "Sample Frontend Developer"},
            "user": {
                "_id": "mock-user-1",
                "name": "Sample Job Seeker",
                "email": "seeker@example.com",
                "role": "jobSeeker",
            },
            "createdAt": _iso(anchor + timedelta(days=4)),
            "interviewDate": _iso(anchor + timedelta(days=8, hours=11)),
        },
    ]


_BUILDERS = {
    "users": mock_users,
    "jobs": mock_jobs,
    "applications": mock_applications,
}


class MockFetcher(BaseFetcher):
    """Return a small fixed record set anchored to the requested window."""

    def __init__(self, kind: str) -> None:
        if kind not in _BUILDERS:
            raise KeyError(f"Unknown mock record kind '{kind}'")
        self.kind = kind

    @property
    def name(self) -> str:
        return f"mock-{self.kind}"

    async def fetch(self, client: PortalClient, params: dict[str, Any]) -> FetchedPage:
        records = _BUILDERS[self.kind](_window_start(params))
        return FetchedPage(records=records, total=len(records), endpoint=self.name)
