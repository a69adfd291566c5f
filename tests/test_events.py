"""Tests for the event builders and client-side filtering.

Run with:  python -m pytest tests/ -v
"""

from __future__ import annotations

import copy
from datetime import datetime, timezone

import pytest

from conftest import (
    NOW,
    SAMPLE_APPLICATIONS,
    SAMPLE_JOBS,
    SAMPLE_USERS,
    WINDOW_END,
    WINDOW_START,
)
from portal_calendar.events import (
    apply_filters,
    create_application_events,
    create_job_events,
    create_resume_events,
    index_jobs,
    make_custom_event,
    normalize_role,
    parse_timestamp,
)
from portal_calendar.models import BuildReport, EventType, Filters, Role


class TestParseTimestamp:
    """Tests for timestamp normalisation."""

    def test_offset_converted_to_utc(self) -> None:
        dt = parse_timestamp("2026-02-20T08:30:00-05:00")
        assert dt == datetime(2026, 2, 20, 13, 30, tzinfo=timezone.utc)

    def test_zulu_suffix(self) -> None:
        dt = parse_timestamp("2026-02-20T08:30:00.000Z")
        assert dt is not None
        assert dt.tzinfo == timezone.utc
        assert dt.hour == 8

    def test_date_only_is_midnight_utc(self) -> None:
        assert parse_timestamp("2026-02-20") == datetime(2026, 2, 20, tzinfo=timezone.utc)

    def test_epoch_milliseconds(self) -> None:
        assert parse_timestamp(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "", "not a date", True, ["2026-02-20"]])
    def test_unparseable_is_none(self, value) -> None:
        assert parse_timestamp(value) is None

    @pytest.mark.parametrize("value", [1e20, 10**20, -1e20, float("inf"), float("nan")])
    def test_out_of_range_epoch_is_none(self, value) -> None:
        assert parse_timestamp(value) is None


class TestNormalizeRole:
    """Roles are resolved once into the Role enum."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("jobSeeker", Role.JOB_SEEKER),
            ("job_seeker", Role.JOB_SEEKER),
            ("Trainer", Role.TRAINER),
            ({"name": "Employer"}, Role.EMPLOYER),
            ("64b7f0c2e4b0a1a2b3c4d5e6", Role.UNKNOWN),
            ("admin", Role.UNKNOWN),
            (None, Role.UNKNOWN),
        ],
    )
    def test_resolution(self, raw, expected) -> None:
        assert normalize_role(raw) is expected


class TestCreateResumeEvents:
    """Tests for resume event building."""

    def test_only_users_with_resume(self) -> None:
        """Two of three users have a resume: exactly two resume events."""
        events = create_resume_events(SAMPLE_USERS, WINDOW_START, WINDOW_END, now=NOW)
        assert len(events) == 2
        assert {ev.type for ev in events} == {EventType.RESUME}
        assert {ev.details.user.id for ev in events} == {"u1", "u2"}

    def test_users_without_resume_excluded(self) -> None:
        users = [u for u in SAMPLE_USERS if "professionalInfo" not in u]
        assert create_resume_events(users, WINDOW_START, WINDOW_END, now=NOW) == []

    def test_upload_date_preferred(self) -> None:
        events = create_resume_events(SAMPLE_USERS, WINDOW_START, WINDOW_END, now=NOW)
        bob = next(ev for ev in events if ev.details.user.id == "u2")
        assert bob.start == datetime(2026, 2, 10, 12, 30, tzinfo=timezone.utc)
        assert bob.details.resume_url == "https://cdn.example.com/bob.pdf"
        assert bob.details.status == "pending"
        assert bob.details.user.role is Role.TRAINER

    def test_outside_window_excluded(self) -> None:
        user = dict(SAMPLE_USERS[0], createdAt="2026-03-05T09:00:00Z")
        assert create_resume_events([user], WINDOW_START, WINDOW_END, now=NOW) == []

    def test_missing_date_defaults_to_now(self) -> None:
        user = {"_id": "u7", "name": "No Dates", "resume": "https://cdn.example.com/x.pdf"}
        events = create_resume_events([user], WINDOW_START, WINDOW_END, now=NOW)
        assert len(events) == 1
        assert events[0].start == NOW

    def test_bad_records_counted_not_raised(self) -> None:
        broken = {"name": "No Id", "resume": "https://cdn.example.com/y.pdf"}
        report = BuildReport()
        events = create_resume_events(
            [*SAMPLE_USERS, broken, "garbage"], WINDOW_START, WINDOW_END,
            now=NOW, report=report,
        )
        assert len(events) == 2
        assert report.processed == 5
        assert report.failed == 2
        assert report.skipped == 1
        assert report.warning

    def test_bad_timestamps_fall_back(self) -> None:
        far_future = {**SAMPLE_USERS[0], "_id": "u7", "updatedAt": 10**20}
        wrong_type = {**SAMPLE_USERS[0], "_id": "u8", "updatedAt": {"$date": "x"},
                      "createdAt": ["2026-02-03"]}
        report = BuildReport()
        events = create_resume_events(
            [far_future, wrong_type], WINDOW_START, WINDOW_END, now=NOW, report=report,
        )
        by_id = {ev.id: ev.start for ev in events}
        assert by_id == {
            "resume-u7": datetime(2026, 2, 3, 9, 0, tzinfo=timezone.utc),
            "resume-u8": NOW,
        }
        assert report.failed == 0

    def test_no_warning_below_threshold(self) -> None:
        users = [
            {"_id": f"u{i}", "name": f"User {i}", "resume": "r.pdf",
             "createdAt": "2026-02-10T00:00:00Z"}
            for i in range(19)
        ]
        report = BuildReport()
        create_resume_events([*users, None], WINDOW_START, WINDOW_END, now=NOW, report=report)
        assert report.failed == 1
        assert report.warning == ""

    def test_idempotent(self) -> None:
        first = create_resume_events(SAMPLE_USERS, WINDOW_START, WINDOW_END, now=NOW)
        second = create_resume_events(
            copy.deepcopy(SAMPLE_USERS), WINDOW_START, WINDOW_END, now=NOW,
        )
        assert first == second


class TestCreateJobEvents:
    """Tests for new-job and deadline event building."""

    def test_counts_bounded_by_window(self) -> None:
        events = create_job_events(SAMPLE_JOBS, WINDOW_START, WINDOW_END)
        new_jobs = [ev for ev in events if ev.type is EventType.NEW_JOB]
        deadlines = [ev for ev in events if ev.type is EventType.DEADLINE]
        # j2 was created in January; j3 has no deadline.
        assert {ev.details.job.id for ev in new_jobs} == {"j1", "j3"}
        assert {ev.details.job.id for ev in deadlines} == {"j1", "j2"}

    def test_job_without_dates_skipped(self) -> None:
        report = BuildReport()
        events = create_job_events(
            [{"_id": "j9", "title": "Undated"}], WINDOW_START, WINDOW_END, report=report,
        )
        assert events == []
        assert report.skipped == 1
        assert report.failed == 0

    def test_unusable_timestamps_skip_only_that_job(self) -> None:
        jobs = [
            {"_id": "ok", "title": "Valid", "createdAt": "2026-02-02T08:00:00Z"},
            {"_id": "bad", "title": "Overflow", "createdAt": 1e20},
            {"_id": "odd", "title": "Wrong type", "createdAt": {"when": "soon"},
             "applicationDeadline": 10**20},
        ]
        report = BuildReport()
        events = create_job_events(jobs, WINDOW_START, WINDOW_END, report=report)
        assert [ev.id for ev in events] == ["job-ok"]
        assert report.processed == 3
        assert report.skipped == 2
        assert report.failed == 0

    def test_company_object_flattened(self) -> None:
        events = create_job_events(SAMPLE_JOBS[:1], WINDOW_START, WINDOW_END)
        assert events[0].details.job.company == "Acme"
        assert events[0].title == "New Job: Frontend Developer"

    def test_idempotent(self) -> None:
        assert create_job_events(SAMPLE_JOBS, WINDOW_START, WINDOW_END) == create_job_events(
            SAMPLE_JOBS, WINDOW_START, WINDOW_END,
        )


class TestCreateApplicationEvents:
    """Tests for interview events built from applications."""

    def test_interview_event_resolves_job_title(self) -> None:
        events = create_application_events(
            SAMPLE_APPLICATIONS, WINDOW_START, WINDOW_END,
            jobs_by_id=index_jobs(SAMPLE_JOBS),
        )
        assert len(events) == 1
        ev = events[0]
        assert ev.type is EventType.INTERVIEW
        assert ev.id == "interview-a1"
        assert ev.title == "Interview: Alice Seeker - Frontend Developer"
        assert ev.details.status == "shortlisted"
        assert ev.color == "#4BC0C0"

    def test_unknown_job_and_applicant(self) -> None:
        app = {"_id": "a5", "job": "jx", "user": "ux", "interviewDate": "2026-02-09T10:00:00Z"}
        events = create_application_events([app], WINDOW_START, WINDOW_END)
        assert events[0].title == "Interview: Unknown Applicant - Unknown Position"
        assert events[0].details.status == "pending"


class TestApplyFilters:
    """Tests for client-side filtering."""

    @pytest.fixture
    def events(self):
        return (
            create_resume_events(SAMPLE_USERS, WINDOW_START, WINDOW_END, now=NOW)
            + create_job_events(SAMPLE_JOBS, WINDOW_START, WINDOW_END)
            + [make_custom_event("Board meeting", "2026-02-11T15:00:00Z", event_id="m1")]
        )

    def test_all_keeps_everything(self, events) -> None:
        assert apply_filters(events, Filters()) == events

    def test_event_type(self, events) -> None:
        kept = apply_filters(events, Filters(event_type="deadline"))
        assert kept
        assert all(ev.type is EventType.DEADLINE for ev in kept)

    def test_status_spares_events_without_status(self, events) -> None:
        kept = apply_filters(events, Filters(status="approved"))
        assert "resume-u2" not in {ev.id for ev in kept}
        assert "custom-m1" in {ev.id for ev in kept}

    def test_role_only_applies_to_user_events(self, events) -> None:
        kept = apply_filters(events, Filters(role="trainer"))
        resume_ids = {ev.id for ev in kept if ev.type is EventType.RESUME}
        assert resume_ids == {"resume-u2"}
        assert any(ev.type is EventType.NEW_JOB for ev in kept)

    def test_invalid_filter_rejected(self) -> None:
        with pytest.raises(ValueError):
            Filters(status="archived")


class TestMakeCustomEvent:
    def test_builds_custom_event(self) -> None:
        ev = make_custom_event("  Job fair  ", "2026-02-18T10:00:00Z", event_id="f1")
        assert ev.id == "custom-f1"
        assert ev.title == "Job fair"
        assert ev.type is EventType.CUSTOM

    def test_rejects_bad_start(self) -> None:
        with pytest.raises(ValueError):
            make_custom_event("Job fair", "someday", event_id="f2")
