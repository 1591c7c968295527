"""Auto-blocking, calendar views, lifecycle transitions and gap detection."""

from datetime import timedelta
import logging
from unittest.mock import Mock

import pytest

from provider_calendar.core.exceptions import (
    InvalidStateException,
    NotFoundException,
    ValidationException,
)
from provider_calendar.models.availability import AvailabilityType, CalendarAvailability
from provider_calendar.models.job_schedule import JobSchedule, ScheduleStatus
from provider_calendar.models.reschedule_request import RescheduleStatus
from provider_calendar.services.availability_service import AvailabilityService
from provider_calendar.services.notification_dispatcher import NotificationPriority, NotificationType
from tests.helpers.calendar_helpers import CLIENT_ID, PROVIDER_ID, FailingDispatcher, at


class TestAutoBlockTimeForJob:
    def test_creates_linked_busy_block_when_free(self, service, db, dispatcher) -> None:
        schedule = service.auto_block_time_for_job(
            PROVIDER_ID, "job-1", "app-1", at(10), at(11), location={"lat": 14.6, "lng": 121.0}
        )

        assert schedule.status == ScheduleStatus.SCHEDULED.value
        assert schedule.location == {"lat": 14.6, "lng": 121.0}
        block = db.get(CalendarAvailability, schedule.calendar_availability_id)
        assert block.type == AvailabilityType.BUSY.value
        assert block.title == "Job Scheduled"
        assert block.is_available is False
        assert (block.start_time, block.end_time) == (at(10), at(11))

        [notification] = dispatcher.sent
        assert notification.type == NotificationType.JOB_SCHEDULED
        assert notification.target_user_id == PROVIDER_ID
        assert notification.priority == NotificationPriority.HIGH
        assert notification.data["job_schedule_id"] == schedule.id

    def test_skips_block_when_available_block_overlaps(self, service, db) -> None:
        service.create_availability(PROVIDER_ID, at(9), at(17))

        schedule = service.auto_block_time_for_job(PROVIDER_ID, "job-1", None, at(10), at(11))

        assert schedule.calendar_availability_id is None
        assert db.query(JobSchedule).count() == 1
        assert db.query(CalendarAvailability).count() == 1

    def test_double_booking_is_allowed_but_logged(self, service, db, caplog) -> None:
        service.auto_block_time_for_job(PROVIDER_ID, "job-1", None, at(10), at(11))

        with caplog.at_level(logging.WARNING):
            service.auto_block_time_for_job(PROVIDER_ID, "job-2", None, at(10), at(11))

        assert db.query(JobSchedule).count() == 2
        assert any("overlaps" in record.getMessage() for record in caplog.records)

    def test_rejects_bad_interval(self, service, db) -> None:
        with pytest.raises(ValidationException):
            service.auto_block_time_for_job(PROVIDER_ID, "job-1", None, at(11), at(10))

        assert db.query(JobSchedule).count() == 0

    def test_unknown_job_with_lookup(self, db, dispatcher, clock) -> None:
        lookup = Mock()
        lookup.find_by_id.return_value = None
        service = AvailabilityService(db, dispatcher=dispatcher, clock=clock, job_lookup=lookup)

        with pytest.raises(NotFoundException):
            service.auto_block_time_for_job(PROVIDER_ID, "ghost", None, at(10), at(11))

        lookup.find_by_id.assert_called_once_with("ghost")
        assert db.query(JobSchedule).count() == 0

    def test_notification_failure_does_not_roll_back(self, db, clock) -> None:
        failing = FailingDispatcher()
        service = AvailabilityService(db, dispatcher=failing, clock=clock)

        schedule = service.auto_block_time_for_job(PROVIDER_ID, "job-1", None, at(10), at(11))

        assert failing.attempts == 1
        assert db.get(JobSchedule, schedule.id) is not None


class TestCalendarView:
    def test_composes_blocks_and_schedules(self, service) -> None:
        block = service.create_availability(PROVIDER_ID, at(8), at(9))
        schedule = service.auto_block_time_for_job(PROVIDER_ID, "job-1", None, at(10), at(11))

        view = service.get_calendar_view(PROVIDER_ID, "day", at(0))

        assert view.view_type == "day"
        assert view.end_date == at(0) + timedelta(days=1)
        assert [b.id for b in view.availability] == [block.id, schedule.calendar_availability_id]
        assert [s.id for s in view.schedules] == [schedule.id]

    @pytest.mark.parametrize("view_type, days", [("day", 1), ("week", 7), ("month", 30)])
    def test_default_end_by_view_type(self, service, view_type, days) -> None:
        view = service.get_calendar_view(PROVIDER_ID, view_type, at(0))

        assert view.end_date - view.start_date == timedelta(days=days)

    def test_explicit_end_wins(self, service) -> None:
        view = service.get_calendar_view(PROVIDER_ID, "week", at(0), at(12))

        assert view.end_date == at(12)

    def test_unknown_view_type(self, service) -> None:
        with pytest.raises(ValidationException):
            service.get_calendar_view(PROVIDER_ID, "year", at(0))

    def test_is_read_only(self, service, db) -> None:
        service.get_calendar_view(PROVIDER_ID, "week", at(0))

        assert db.query(CalendarAvailability).count() == 0
        assert db.query(JobSchedule).count() == 0


class TestScheduleQueries:
    def test_get_schedules_with_status(self, service) -> None:
        first = service.auto_block_time_for_job(PROVIDER_ID, "job-1", None, at(10), at(11))
        second = service.auto_block_time_for_job(PROVIDER_ID, "job-2", None, at(12), at(13))
        service.cancel_schedule(second.id)

        scheduled = service.get_schedules(PROVIDER_ID, at(0), at(23), status="scheduled")

        assert [s.id for s in scheduled] == [first.id]

    def test_upcoming_uses_clock(self, service, clock) -> None:
        service.auto_block_time_for_job(PROVIDER_ID, "job-1", None, at(10), at(11))
        later = service.auto_block_time_for_job(PROVIDER_ID, "job-2", None, at(14), at(15))
        clock.set(at(12))

        assert [s.id for s in service.get_upcoming_schedules(PROVIDER_ID)] == [later.id]

    def test_upcoming_honours_explicit_zero_limit(self, service, clock) -> None:
        service.auto_block_time_for_job(PROVIDER_ID, "job-1", None, at(14), at(15))
        clock.set(at(12))

        assert service.get_upcoming_schedules(PROVIDER_ID, limit=0) == []


class TestLifecycle:
    @pytest.fixture
    def schedule(self, service):
        return service.auto_block_time_for_job(PROVIDER_ID, "job-1", None, at(10), at(11))

    def test_start_then_complete(self, service, clock, dispatcher, schedule) -> None:
        clock.set(at(10, 2))
        started = service.start_schedule(schedule.id)
        assert started.status == ScheduleStatus.IN_PROGRESS.value
        assert started.actual_start_time == at(10, 2)

        clock.set(at(10, 55))
        completed = service.complete_schedule(schedule.id)
        assert completed.status == ScheduleStatus.COMPLETED.value
        assert completed.actual_end_time == at(10, 55)

        assert len(dispatcher.of_type(NotificationType.JOB_STARTED)) == 1
        assert len(dispatcher.of_type(NotificationType.JOB_COMPLETED)) == 1

    def test_pause_keeps_in_progress(self, service, schedule) -> None:
        service.start_schedule(schedule.id)

        paused = service.pause_schedule(schedule.id)

        assert paused.status == ScheduleStatus.IN_PROGRESS.value

    def test_pause_requires_in_progress(self, service, schedule) -> None:
        with pytest.raises(InvalidStateException):
            service.pause_schedule(schedule.id)

    def test_complete_requires_in_progress(self, service, schedule) -> None:
        with pytest.raises(InvalidStateException):
            service.complete_schedule(schedule.id)

    def test_cancel_records_reason_and_withdraws_pending_requests(self, service, clock, schedule) -> None:
        request = service.create_reschedule_request(
            schedule.id, CLIENT_ID, PROVIDER_ID, at(14), at(15), "Traffic"
        )

        cancelled = service.cancel_schedule(schedule.id, reason="Client cancelled")

        assert cancelled.status == ScheduleStatus.CANCELLED.value
        assert cancelled.cancelled_at == clock()
        assert cancelled.cancellation_reason == "Client cancelled"
        service.db.refresh(request)
        assert request.status == RescheduleStatus.CANCELLED.value

    def test_cancelled_is_terminal(self, service, schedule) -> None:
        service.cancel_schedule(schedule.id)

        with pytest.raises(InvalidStateException):
            service.start_schedule(schedule.id)
        with pytest.raises(InvalidStateException):
            service.cancel_schedule(schedule.id)

    def test_in_progress_can_be_cancelled(self, service, schedule) -> None:
        service.start_schedule(schedule.id)

        assert service.cancel_schedule(schedule.id).status == ScheduleStatus.CANCELLED.value

    def test_missing_schedule(self, service) -> None:
        with pytest.raises(NotFoundException):
            service.start_schedule("missing")


class TestScheduleGaps:
    def test_finds_leading_middle_and_trailing_gaps(self, service) -> None:
        service.auto_block_time_for_job(PROVIDER_ID, "job-1", None, at(10), at(11))
        service.auto_block_time_for_job(PROVIDER_ID, "job-2", None, at(13), at(14))

        gaps = service.find_schedule_gaps(PROVIDER_ID, at(8), at(17))

        assert [(g.start, g.end) for g in gaps] == [
            (at(8), at(10)),
            (at(11), at(13)),
            (at(14), at(17)),
        ]
        assert gaps[0].duration_minutes == 120

    def test_drops_short_gaps_and_merges_overlaps(self, service) -> None:
        service.auto_block_time_for_job(PROVIDER_ID, "job-1", None, at(9), at(11))
        service.auto_block_time_for_job(PROVIDER_ID, "job-2", None, at(10), at(12))
        service.auto_block_time_for_job(PROVIDER_ID, "job-3", None, at(12, 30), at(16))

        gaps = service.find_schedule_gaps(PROVIDER_ID, at(9), at(17))

        assert [(g.start, g.end) for g in gaps] == [(at(16), at(17))]

    def test_cancelled_reservations_leave_a_gap(self, service) -> None:
        schedule = service.auto_block_time_for_job(PROVIDER_ID, "job-1", None, at(10), at(11))
        service.cancel_schedule(schedule.id)

        gaps = service.find_schedule_gaps(PROVIDER_ID, at(9), at(12), min_gap_minutes=30)

        assert [(g.start, g.end) for g in gaps] == [(at(9), at(12))]
