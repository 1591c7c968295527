from provider_calendar.monitoring.prometheus_metrics import REGISTRY, prometheus_metrics


def _sample(name: str, labels: dict) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestCalendarMetrics:
    def test_notification_outcomes_are_counted(self) -> None:
        labels = {"notification_type": "job_start_reminder", "status": "failed"}
        before = _sample("provider_calendar_notifications_dispatched_total", labels)

        prometheus_metrics.record_notification("job_start_reminder", "failed")

        assert _sample("provider_calendar_notifications_dispatched_total", labels) == before + 1

    def test_automation_runs(self) -> None:
        partial_before = _sample("provider_calendar_automation_runs_total", {"status": "partial"})
        reminders_before = _sample("provider_calendar_automation_items_total", {"scan": "reminder"})

        prometheus_metrics.record_automation_run(reminders=3, lateness_alerts=0, errors=1)

        assert _sample("provider_calendar_automation_runs_total", {"status": "partial"}) == partial_before + 1
        assert _sample("provider_calendar_automation_items_total", {"scan": "reminder"}) == reminders_before + 3

    def test_errors_are_labelled_by_type(self) -> None:
        labels = {"service": "AvailabilityService", "operation": "create_availability", "error_type": "AvailabilityConflictException"}
        before = _sample("provider_calendar_errors_total", labels)

        prometheus_metrics.record_service_operation(
            service="AvailabilityService",
            operation="create_availability",
            duration=0.01,
            status="error",
            error_type="AvailabilityConflictException",
        )

        assert _sample("provider_calendar_errors_total", labels) == before + 1

    def test_exposition(self) -> None:
        prometheus_metrics.record_notification("job_scheduled", "sent")

        body = prometheus_metrics.get_metrics().decode()

        assert "provider_calendar_notifications_dispatched_total" in body
        assert prometheus_metrics.get_content_type().startswith("text/plain")
