# backend/provider_calendar/models/job_schedule.py
"""
Job schedule model.

A job schedule is a confirmed reservation of a provider's time against one
job. It is created when the provider's application for the job is accepted,
moves through its lifecycle as the provider starts and completes the work,
and is shifted in place when a reschedule request is approved.
"""

from datetime import datetime
from enum import Enum
import logging
from typing import Any, Dict, FrozenSet, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.exceptions import InvalidStateException
from ..database import Base
from .types import JSONType, UTCDateTime, new_id

logger = logging.getLogger(__name__)


class ScheduleStatus(str, Enum):
    """Job schedule lifecycle statuses."""

    SCHEDULED = "scheduled"  # Default - created at job acceptance
    IN_PROGRESS = "in_progress"  # Provider started the job
    COMPLETED = "completed"  # Provider finished the job
    CANCELLED = "cancelled"  # Cancelled by either party
    RESCHEDULED = "rescheduled"  # Times shifted by an approved reschedule request


TERMINAL_SCHEDULE_STATUSES: FrozenSet[str] = frozenset(
    {ScheduleStatus.COMPLETED.value, ScheduleStatus.CANCELLED.value}
)

# rescheduled stays active and behaves like scheduled
_ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    ScheduleStatus.SCHEDULED.value: frozenset(
        {
            ScheduleStatus.IN_PROGRESS.value,
            ScheduleStatus.RESCHEDULED.value,
            ScheduleStatus.CANCELLED.value,
        }
    ),
    ScheduleStatus.RESCHEDULED.value: frozenset(
        {
            ScheduleStatus.IN_PROGRESS.value,
            ScheduleStatus.RESCHEDULED.value,
            ScheduleStatus.CANCELLED.value,
        }
    ),
    ScheduleStatus.IN_PROGRESS.value: frozenset(
        {ScheduleStatus.COMPLETED.value, ScheduleStatus.CANCELLED.value}
    ),
    ScheduleStatus.COMPLETED.value: frozenset(),
    ScheduleStatus.CANCELLED.value: frozenset(),
}

_TRANSITION_ACTIONS = {
    ScheduleStatus.IN_PROGRESS.value: "start",
    ScheduleStatus.COMPLETED.value: "complete",
    ScheduleStatus.CANCELLED.value: "cancel",
    ScheduleStatus.RESCHEDULED.value: "reschedule",
}


class JobSchedule(Base):
    """Reservation of provider time for a specific job."""

    __tablename__ = "job_schedules"

    id = Column(String(26), primary_key=True, index=True, default=new_id)

    provider_id = Column(String(64), nullable=False, index=True)
    job_id = Column(String(64), nullable=False, index=True)
    application_id = Column(String(64), nullable=True)

    scheduled_start_time = Column(UTCDateTime, nullable=False, index=True)
    scheduled_end_time = Column(UTCDateTime, nullable=False)
    actual_start_time = Column(UTCDateTime, nullable=True)
    actual_end_time = Column(UTCDateTime, nullable=True)

    status = Column(String(20), nullable=False, default=ScheduleStatus.SCHEDULED.value, index=True)

    calendar_availability_id = Column(
        String(26),
        ForeignKey("calendar_availability.id", ondelete="SET NULL"),
        nullable=True,
    )
    # Opaque reference into the external time-tracking system
    time_entry_id = Column(String(64), nullable=True)
    location = Column(JSONType, nullable=True)

    # Automation flags
    reminder_sent = Column(Boolean, nullable=False, default=False)
    reminder_sent_at = Column(UTCDateTime, nullable=True)
    lateness_alert_sent = Column(Boolean, nullable=False, default=False)

    cancelled_at = Column(UTCDateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, onupdate=func.now())

    calendar_availability = relationship("CalendarAvailability", foreign_keys=[calendar_availability_id])
    reschedule_requests = relationship(
        "RescheduleRequest",
        back_populates="job_schedule",
        cascade="all, delete-orphan",
        order_by="RescheduleRequest.created_at",
    )

    __table_args__ = (
        CheckConstraint(
            "scheduled_start_time < scheduled_end_time",
            name="ck_job_schedules_time_order",
        ),
        CheckConstraint(
            "status IN ('scheduled', 'in_progress', 'completed', 'cancelled', 'rescheduled')",
            name="ck_job_schedules_status",
        ),
        Index("idx_job_schedules_provider_start", "provider_id", "scheduled_start_time"),
        Index("idx_job_schedules_status_start", "status", "scheduled_start_time"),
    )

    def __init__(self, **kwargs: Any) -> None:
        """Initialize as scheduled by default."""
        super().__init__(**kwargs)
        if not self.status:
            self.status = ScheduleStatus.SCHEDULED.value
        if self.reminder_sent is None:
            self.reminder_sent = False
        if self.lateness_alert_sent is None:
            self.lateness_alert_sent = False
        logger.info(f"Creating job schedule for provider {self.provider_id} on job {self.job_id}")

    def __repr__(self) -> str:
        return (
            f"<JobSchedule {self.id}: provider={self.provider_id}, job={self.job_id}, "
            f"{self.scheduled_start_time}-{self.scheduled_end_time}, status={self.status}>"
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_SCHEDULE_STATUSES

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in _ALLOWED_TRANSITIONS.get(self.status, frozenset())

    def _transition(self, new_status: ScheduleStatus) -> None:
        if not self.can_transition_to(new_status.value):
            raise InvalidStateException(
                entity="job schedule",
                entity_id=str(self.id),
                current_status=str(self.status),
                action=_TRANSITION_ACTIONS[new_status.value],
            )
        self.status = new_status.value

    def start(self, now: datetime) -> None:
        """Mark the job as started."""
        self._transition(ScheduleStatus.IN_PROGRESS)
        self.actual_start_time = now

    def complete(self, now: datetime) -> None:
        """Mark the job as completed."""
        self._transition(ScheduleStatus.COMPLETED)
        self.actual_end_time = now

    def cancel(self, now: datetime, reason: Optional[str] = None) -> None:
        """Cancel this reservation."""
        self._transition(ScheduleStatus.CANCELLED)
        self.cancelled_at = now
        self.cancellation_reason = reason
        logger.info(f"Job schedule {self.id} cancelled")

    def reschedule(self, start: datetime, end: datetime) -> None:
        """Shift the reservation to a new interval."""
        self._transition(ScheduleStatus.RESCHEDULED)
        self.scheduled_start_time = start
        self.scheduled_end_time = end

    def mark_reminder_sent(self, now: datetime) -> None:
        self.reminder_sent = True
        self.reminder_sent_at = now

    def mark_lateness_alert_sent(self) -> None:
        self.lateness_alert_sent = True
