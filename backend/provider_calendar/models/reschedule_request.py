# backend/provider_calendar/models/reschedule_request.py
"""Reschedule request negotiated between the two parties of a job schedule."""

from enum import Enum

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base
from .types import UTCDateTime, new_id


class RescheduleStatus(str, Enum):
    """Reschedule request statuses. Everything except pending is terminal."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class RescheduleRequest(Base):
    """Proposal to move a job schedule to a new interval."""

    __tablename__ = "reschedule_requests"

    id = Column(String(26), primary_key=True, index=True, default=new_id)
    job_schedule_id = Column(
        String(26),
        ForeignKey("job_schedules.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    job_id = Column(String(64), nullable=False)

    requested_by = Column(String(64), nullable=False, index=True)
    requested_for = Column(String(64), nullable=False, index=True)

    # Snapshot of the schedule at request time; the only record of the old times
    original_start_time = Column(UTCDateTime, nullable=False)
    original_end_time = Column(UTCDateTime, nullable=False)
    requested_start_time = Column(UTCDateTime, nullable=False)
    requested_end_time = Column(UTCDateTime, nullable=False)

    reason = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=RescheduleStatus.PENDING.value, index=True)

    approved_by = Column(String(64), nullable=True)
    approved_at = Column(UTCDateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    responded_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, onupdate=func.now())

    job_schedule = relationship("JobSchedule", back_populates="reschedule_requests")

    __table_args__ = (
        CheckConstraint(
            "requested_start_time < requested_end_time",
            name="ck_reschedule_requests_time_order",
        ),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'cancelled')",
            name="ck_reschedule_requests_status",
        ),
        Index("idx_reschedule_requests_for_status", "requested_for", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<RescheduleRequest {self.id}: schedule={self.job_schedule_id}, "
            f"status={self.status}>"
        )

    @property
    def is_pending(self) -> bool:
        return self.status == RescheduleStatus.PENDING.value

    def other_party(self, user_id: str) -> str:
        """Return the participant that is not ``user_id``."""
        return self.requested_for if user_id == self.requested_by else self.requested_by
