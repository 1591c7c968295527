# backend/provider_calendar/models/availability.py
"""
Calendar availability model.

A provider declares blocks of time as available, unavailable or busy.
Busy blocks are also created automatically when a job is scheduled.
Recurring blocks are materialized at creation time: the parent row holds the
first occurrence plus the recurrence pattern, and every further occurrence is
a child row pointing back at it, so overlap checks only ever compare plain
intervals.
"""

from datetime import datetime
from enum import Enum
import logging
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import backref, relationship
from sqlalchemy.sql import func

from ..database import Base
from .types import JSONType, UTCDateTime, new_id

logger = logging.getLogger(__name__)


class AvailabilityType(str, Enum):
    """Kinds of calendar blocks."""

    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    BUSY = "busy"


AVAILABILITY_TYPES = tuple(t.value for t in AvailabilityType)


class CalendarAvailability(Base):
    """A provider-declared interval with an availability status."""

    __tablename__ = "calendar_availability"

    id = Column(String(26), primary_key=True, index=True, default=new_id)
    provider_id = Column(String(64), nullable=False, index=True)

    title = Column(String(255), nullable=True)
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)

    # Recurrence metadata (only set on the parent of a materialized series)
    is_recurring = Column(Boolean, nullable=False, default=False)
    recurrence_pattern = Column(JSONType, nullable=True)
    recurrence_parent_id = Column(
        String(26),
        ForeignKey("calendar_availability.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    is_available = Column(Boolean, nullable=False, default=True)
    type = Column(String(20), nullable=False, default=AvailabilityType.AVAILABLE.value)
    notes = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, onupdate=func.now())

    occurrences = relationship(
        "CalendarAvailability",
        cascade="all, delete-orphan",
        passive_deletes=True,
        backref=backref("recurrence_parent", remote_side=[id]),
    )

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_calendar_availability_time_order"),
        CheckConstraint(
            "type IN ('available', 'unavailable', 'busy')",
            name="ck_calendar_availability_type",
        ),
        Index("idx_calendar_availability_provider_window", "provider_id", "start_time", "end_time"),
        Index("idx_calendar_availability_provider_type", "provider_id", "type"),
    )

    def __init__(self, **kwargs: Any) -> None:
        block_type = kwargs.get("type")
        if isinstance(block_type, AvailabilityType):
            kwargs["type"] = block_type.value
        kwargs.setdefault("type", AvailabilityType.AVAILABLE.value)
        if kwargs.get("is_available") is None:
            kwargs["is_available"] = kwargs["type"] == AvailabilityType.AVAILABLE.value
        kwargs.setdefault("is_recurring", False)
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return (
            f"<CalendarAvailability {self.id}: provider={self.provider_id}, "
            f"{self.start_time}-{self.end_time}, type={self.type}>"
        )

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open overlap: touching endpoints do not overlap."""
        return self.start_time < end and start < self.end_time

    def shift_to(self, start: datetime, end: datetime) -> None:
        """Move this block to a new interval."""
        self.start_time = start
        self.end_time = end

    @property
    def is_occurrence(self) -> bool:
        return self.recurrence_parent_id is not None

    @property
    def duration_minutes(self) -> Optional[int]:
        if self.start_time is None or self.end_time is None:
            return None
        return int((self.end_time - self.start_time).total_seconds() // 60)
