import pytest

from provider_calendar.core.exceptions import InvalidStateException
from provider_calendar.models import (
    AvailabilityType,
    CalendarAvailability,
    JobSchedule,
    RescheduleRequest,
    ScheduleStatus,
)
from tests.helpers.calendar_helpers import CLIENT_ID, PROVIDER_ID, at


def _schedule(**overrides) -> JobSchedule:
    values = dict(
        id="sched-1",
        provider_id=PROVIDER_ID,
        job_id="job-1",
        scheduled_start_time=at(10),
        scheduled_end_time=at(12),
    )
    values.update(overrides)
    return JobSchedule(**values)


class TestCalendarAvailability:
    def test_is_available_follows_type(self) -> None:
        assert CalendarAvailability(provider_id=PROVIDER_ID, start_time=at(9), end_time=at(10)).is_available
        busy = CalendarAvailability(
            provider_id=PROVIDER_ID, start_time=at(9), end_time=at(10), type=AvailabilityType.BUSY
        )
        assert busy.type == "busy"
        assert busy.is_available is False

    def test_explicit_is_available_wins(self) -> None:
        block = CalendarAvailability(
            provider_id=PROVIDER_ID, start_time=at(9), end_time=at(10), type="busy", is_available=True
        )
        assert block.is_available is True

    def test_overlap_is_half_open(self) -> None:
        block = CalendarAvailability(provider_id=PROVIDER_ID, start_time=at(9), end_time=at(12))

        assert block.overlaps(at(11), at(13))
        assert block.overlaps(at(8), at(9, 1))
        assert not block.overlaps(at(12), at(13))
        assert not block.overlaps(at(8), at(9))

    def test_duration_and_shift(self) -> None:
        block = CalendarAvailability(provider_id=PROVIDER_ID, start_time=at(9), end_time=at(10, 30))
        assert block.duration_minutes == 90
        assert not block.is_occurrence

        block.shift_to(at(14), at(15))
        assert (block.start_time, block.end_time) == (at(14), at(15))
        assert block.duration_minutes == 60


class TestJobScheduleTransitions:
    def test_defaults(self) -> None:
        schedule = _schedule()

        assert schedule.status == ScheduleStatus.SCHEDULED.value
        assert schedule.reminder_sent is False
        assert schedule.lateness_alert_sent is False

    def test_full_lifecycle(self) -> None:
        schedule = _schedule()

        schedule.start(at(10, 2))
        schedule.complete(at(11, 58))

        assert schedule.status == "completed"
        assert schedule.actual_start_time == at(10, 2)
        assert schedule.actual_end_time == at(11, 58)
        assert schedule.is_terminal

    def test_rescheduled_stays_active(self) -> None:
        schedule = _schedule()

        schedule.reschedule(at(14), at(16))
        schedule.start(at(14))

        assert schedule.status == "in_progress"
        assert schedule.scheduled_start_time == at(14)

    def test_cannot_complete_before_start(self) -> None:
        with pytest.raises(InvalidStateException) as exc_info:
            _schedule().complete(at(12))

        assert exc_info.value.details["action"] == "complete"
        assert exc_info.value.details["current_status"] == "scheduled"

    def test_cannot_reschedule_in_progress(self) -> None:
        schedule = _schedule()
        schedule.start(at(10))

        with pytest.raises(InvalidStateException):
            schedule.reschedule(at(14), at(16))

    def test_terminal_states_are_final(self) -> None:
        schedule = _schedule()
        schedule.cancel(at(9), reason="client cancelled")

        assert schedule.cancellation_reason == "client cancelled"
        for action in (lambda: schedule.start(at(10)), lambda: schedule.cancel(at(10))):
            with pytest.raises(InvalidStateException):
                action()

    def test_automation_flags(self) -> None:
        schedule = _schedule()

        schedule.mark_reminder_sent(at(9))
        schedule.mark_lateness_alert_sent()

        assert schedule.reminder_sent and schedule.reminder_sent_at == at(9)
        assert schedule.lateness_alert_sent


class TestRescheduleRequestModel:
    def test_other_party(self) -> None:
        request = RescheduleRequest(requested_by=PROVIDER_ID, requested_for=CLIENT_ID, status="pending")

        assert request.is_pending
        assert request.other_party(PROVIDER_ID) == CLIENT_ID
        assert request.other_party(CLIENT_ID) == PROVIDER_ID
