# backend/provider_calendar/services/automation_scheduler.py
"""
Automation scheduler for job start reminders and lateness alerts.

``tick()`` runs both scans once against a fresh session and is the entry
point for tests and for the Celery beat task. ``start()``/``stop()`` run
ticks on a daemon thread for single-process deployments.
"""

from dataclasses import dataclass, field
from datetime import datetime
import logging
import threading
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.timezone_utils import Clock, ensure_utc, utc_now
from ..database import SessionLocal
from ..monitoring.prometheus_metrics import prometheus_metrics
from .availability_service import AvailabilityService
from .notification_dispatcher import LoggingNotificationDispatcher, NotificationDispatcher

logger = logging.getLogger(__name__)


@dataclass
class AutomationRunResult:
    """Outcome of one automation tick."""

    ran_at: datetime
    reminders_sent: int = 0
    lateness_alerts_sent: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.errors


class AutomationScheduler:
    """
    Periodic runner for the reminder and lateness scans.

    Usage:
        scheduler = AutomationScheduler()
        scheduler.start()
        ...
        scheduler.stop()
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        clock: Optional[Clock] = None,
        interval_minutes: Optional[int] = None,
        reminder_minutes_before: Optional[int] = None,
    ):
        self.session_factory = session_factory or SessionLocal
        self.dispatcher = dispatcher or LoggingNotificationDispatcher()
        self.clock = clock or utc_now
        self.interval_minutes = (
            settings.automation_interval_minutes if interval_minutes is None else interval_minutes
        )
        self.reminder_minutes_before = (
            settings.reminder_minutes_before if reminder_minutes_before is None else reminder_minutes_before
        )

        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def tick(self) -> AutomationRunResult:
        """
        Run the reminder scan, then the lateness scan.

        A failure in one scan is logged and recorded; the other still runs.
        """
        ran_at = ensure_utc(self.clock())
        result = AutomationRunResult(ran_at=ran_at)

        session = self.session_factory()
        try:
            service = AvailabilityService(
                session, dispatcher=self.dispatcher, clock=lambda: ran_at
            )

            try:
                result.reminders_sent = service.send_job_start_reminders(self.reminder_minutes_before)
            except Exception as e:
                logger.error(f"Job start reminder scan failed: {e}", exc_info=True)
                session.rollback()
                result.errors.append(f"reminders: {e}")

            try:
                result.lateness_alerts_sent = service.send_lateness_alerts()
            except Exception as e:
                logger.error(f"Lateness alert scan failed: {e}", exc_info=True)
                session.rollback()
                result.errors.append(f"lateness_alerts: {e}")
        finally:
            session.close()

        prometheus_metrics.record_automation_run(
            result.reminders_sent, result.lateness_alerts_sent, len(result.errors)
        )
        logger.info(
            "Automation tick at %s: %d reminder(s), %d lateness alert(s), %d error(s)",
            ran_at.isoformat(),
            result.reminders_sent,
            result.lateness_alerts_sent,
            len(result.errors),
        )
        return result

    def start(self) -> None:
        """Start ticking on a daemon thread. A second call while running is a no-op."""
        with self._lock:
            if self.is_running:
                logger.warning("Automation scheduler already running; ignoring start()")
                return
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run,
                name="provider-calendar-automation",
                daemon=True,
            )
            self._thread.start()
        logger.info(f"Automation scheduler started (every {self.interval_minutes} minute(s))")

    def stop(self, timeout: float = 10.0) -> None:
        """Signal the worker thread and wait for it. Safe to call repeatedly."""
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self._stop_event.set()

        thread.join(timeout)
        if thread.is_alive():
            logger.warning("Automation scheduler thread did not stop within %.1fs", timeout)
            return

        with self._lock:
            if self._thread is thread:
                self._thread = None
        logger.info("Automation scheduler stopped")

    def _run(self) -> None:
        interval_seconds = self.interval_minutes * 60
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Automation tick crashed: {e}", exc_info=True)
            self._stop_event.wait(interval_seconds)
