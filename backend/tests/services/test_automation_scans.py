"""Reminder and lateness scans: windows, idempotency and per-record isolation."""

from sqlalchemy.exc import OperationalError

from provider_calendar.core.exceptions import RepositoryException
from provider_calendar.models.job_schedule import JobSchedule
from provider_calendar.services.notification_dispatcher import (
    NotificationPriority,
    NotificationType,
    TIME_CRITICAL_CHANNELS,
)
from provider_calendar.services.availability_service import AvailabilityService
from tests.helpers.calendar_helpers import PROVIDER_ID, FailingDispatcher, at


def _reminders(dispatcher):
    return dispatcher.of_type(NotificationType.JOB_START_REMINDER)


def _alerts(dispatcher):
    return dispatcher.of_type(NotificationType.JOB_LATENESS_ALERT)


class TestJobStartReminders:
    def test_sends_once_per_reservation(self, service, dispatcher, clock) -> None:
        schedule = service.auto_block_time_for_job(PROVIDER_ID, "job-1", None, at(9), at(10))
        clock.set(at(8, 15))

        assert service.send_job_start_reminders(60) == 1
        assert service.send_job_start_reminders(60) == 0

        [reminder] = _reminders(dispatcher)
        assert reminder.target_user_id == PROVIDER_ID
        assert reminder.priority == NotificationPriority.HIGH
        assert reminder.channels == TIME_CRITICAL_CHANNELS
        assert reminder.message == "Your job starts in 60 minutes"
        assert schedule.reminder_sent is True
        assert schedule.reminder_sent_at == at(8, 15)

    def test_outside_window_is_not_reminded(self, service, dispatcher, clock) -> None:
        service.auto_block_time_for_job(PROVIDER_ID, "job-1", None, at(11), at(12))
        clock.set(at(8))

        assert service.send_job_start_reminders(60) == 0
        assert _reminders(dispatcher) == []

    def test_flag_is_set_even_when_dispatch_fails(self, db, clock) -> None:
        failing = FailingDispatcher()
        service = AvailabilityService(db, dispatcher=failing, clock=clock)
        schedule = service.auto_block_time_for_job(PROVIDER_ID, "job-1", None, at(9), at(10))
        clock.set(at(8, 30))
        attempts_before = failing.attempts

        assert service.send_job_start_reminders(60) == 1
        assert failing.attempts == attempts_before + 1
        assert schedule.reminder_sent is True

    def test_one_failing_record_does_not_stop_the_scan(self, service, dispatcher, clock, monkeypatch) -> None:
        first = service.auto_block_time_for_job(PROVIDER_ID, "job-1", None, at(8, 30), at(9))
        second = service.auto_block_time_for_job(PROVIDER_ID, "job-2", None, at(8, 45), at(9, 30))
        clock.set(at(8))

        original_claim = service.schedule_repository.claim_for_reminder

        def flaky_claim(schedule_id):
            if schedule_id == first.id:
                raise RepositoryException("row lock timeout")
            return original_claim(schedule_id)

        monkeypatch.setattr(service.schedule_repository, "claim_for_reminder", flaky_claim)

        assert service.send_job_start_reminders(60) == 1
        assert [n.data["job_schedule_id"] for n in _reminders(dispatcher)] == [second.id]
        assert service.db.get(JobSchedule, first.id).reminder_sent is False

    def test_claimed_elsewhere_is_skipped(self, service, dispatcher, clock, monkeypatch) -> None:
        service.auto_block_time_for_job(PROVIDER_ID, "job-1", None, at(8, 30), at(9))
        clock.set(at(8))
        monkeypatch.setattr(service.schedule_repository, "claim_for_reminder", lambda _id: None)

        assert service.send_job_start_reminders(60) == 0
        assert _reminders(dispatcher) == []

    def test_failed_commit_sends_nothing(self, service, dispatcher, clock, monkeypatch) -> None:
        first = service.auto_block_time_for_job(PROVIDER_ID, "job-1", None, at(8, 30), at(9))
        second = service.auto_block_time_for_job(PROVIDER_ID, "job-2", None, at(8, 45), at(9, 30))
        clock.set(at(8))

        original_commit = service.db.commit
        commits = []

        def commit_failing_once():
            commits.append(True)
            if len(commits) == 1:
                raise OperationalError("COMMIT", {}, Exception("connection lost"))
            original_commit()

        monkeypatch.setattr(service.db, "commit", commit_failing_once)

        assert service.send_job_start_reminders(60) == 1
        assert [n.data["job_schedule_id"] for n in _reminders(dispatcher)] == [second.id]
        assert service.db.get(JobSchedule, first.id).reminder_sent is False

        # The rolled-back reservation is picked up by the next scan, once
        assert service.send_job_start_reminders(60) == 1
        assert [n.data["job_schedule_id"] for n in _reminders(dispatcher)] == [second.id, first.id]


class TestLatenessAlerts:
    def test_four_minutes_late_is_not_flagged(self, service, dispatcher, clock) -> None:
        service.auto_block_time_for_job(PROVIDER_ID, "job-1", None, at(9), at(10))
        clock.set(at(9, 4))

        assert service.send_lateness_alerts() == 0
        assert _alerts(dispatcher) == []

    def test_six_minutes_late_is_flagged_once(self, service, dispatcher, clock) -> None:
        schedule = service.auto_block_time_for_job(PROVIDER_ID, "job-1", None, at(9), at(10))
        clock.set(at(9, 6))

        assert service.send_lateness_alerts() == 1
        assert service.send_lateness_alerts() == 0

        [alert] = _alerts(dispatcher)
        assert alert.priority == NotificationPriority.URGENT
        assert alert.channels == TIME_CRITICAL_CHANNELS
        assert schedule.lateness_alert_sent is True

    def test_started_job_is_not_late(self, service, dispatcher, clock) -> None:
        schedule = service.auto_block_time_for_job(PROVIDER_ID, "job-1", None, at(9), at(10))
        clock.set(at(9, 1))
        service.start_schedule(schedule.id)
        clock.set(at(9, 10))

        assert service.send_lateness_alerts() == 0

    def test_more_than_an_hour_late_is_no_longer_alerted(self, service, clock) -> None:
        service.auto_block_time_for_job(PROVIDER_ID, "job-1", None, at(9), at(10))
        clock.set(at(10, 1))

        assert service.send_lateness_alerts() == 0
