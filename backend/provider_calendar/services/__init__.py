# backend/provider_calendar/services/__init__.py
"""Service layer: business logic on top of the repositories."""

from .automation_scheduler import AutomationRunResult, AutomationScheduler
from .availability_service import AvailabilityService, CalendarView, JobLookup, ScheduleGap
from .base import BaseService
from .notification_dispatcher import (
    LoggingNotificationDispatcher,
    Notification,
    NotificationDispatcher,
    NotificationPriority,
    NotificationType,
)

__all__ = [
    "AutomationRunResult",
    "AutomationScheduler",
    "AvailabilityService",
    "BaseService",
    "CalendarView",
    "JobLookup",
    "LoggingNotificationDispatcher",
    "Notification",
    "NotificationDispatcher",
    "NotificationPriority",
    "NotificationType",
    "ScheduleGap",
]
