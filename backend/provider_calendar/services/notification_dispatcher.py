# backend/provider_calendar/services/notification_dispatcher.py
"""
Outgoing notification contract.

Transport (push, SMS, email) lives outside this core. Services build a
``Notification`` and hand it to a ``NotificationDispatcher``; delivery is
best effort and callers catch and log every dispatcher failure.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import json
import logging
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


class NotificationType:
    JOB_SCHEDULED = "job_scheduled"
    JOB_STARTED = "job_started"
    JOB_COMPLETED = "job_completed"
    JOB_START_REMINDER = "job_start_reminder"
    JOB_LATENESS_ALERT = "job_lateness_alert"
    RESCHEDULE_REQUEST = "reschedule_request"
    RESCHEDULE_APPROVED = "reschedule_approved"
    RESCHEDULE_REJECTED = "reschedule_rejected"
    RESCHEDULE_CANCELLED = "reschedule_cancelled"


class NotificationPriority:
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


DEFAULT_CHANNELS: List[str] = ["in_app"]
TIME_CRITICAL_CHANNELS: List[str] = ["in_app", "push", "sms"]


@dataclass(slots=True)
class Notification:
    """A single message addressed to one user."""

    target_user_id: str
    type: str
    title: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    priority: str = NotificationPriority.MEDIUM
    channels: List[str] = field(default_factory=lambda: list(DEFAULT_CHANNELS))


class NotificationDispatcher(ABC):
    """Sink for outgoing notifications."""

    @abstractmethod
    def send(self, notification: Notification) -> None:
        """Deliver or enqueue the notification. May raise; callers contain failures."""


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Default dispatcher that only logs. Used until a transport is wired in."""

    def send(self, notification: Notification) -> None:
        logger.info(
            "Dispatching notification %s to %s priority=%s channels=%s data=%s",
            notification.type,
            notification.target_user_id,
            notification.priority,
            ",".join(notification.channels),
            json.dumps(notification.data, sort_keys=True, default=str)[:500],
        )
