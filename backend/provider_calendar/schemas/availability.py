# backend/provider_calendar/schemas/availability.py
"""
Availability schemas.

Request models validate what the request layer hands to AvailabilityService;
response models serialize CalendarAvailability rows.
"""

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..models.availability import AvailabilityType
from .base import ORMResponseModel


class RecurrenceFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class RecurrencePattern(BaseModel):
    """
    How a recurring block repeats.

    ``days_of_week`` uses Monday=0 ... Sunday=6 and only applies to weekly
    patterns. The series ends at ``end_date`` (inclusive) or after
    ``occurrences`` instances, whichever comes first.
    """

    model_config = ConfigDict(extra="forbid", use_enum_values=True)

    frequency: RecurrenceFrequency
    interval: int = Field(default=1, ge=1, le=52)
    days_of_week: List[int] = Field(default_factory=list)
    end_date: Optional[date] = None
    occurrences: Optional[int] = Field(default=None, ge=1)

    @field_validator("days_of_week")
    @classmethod
    def validate_days_of_week(cls, v: List[int]) -> List[int]:
        if any(day < 0 or day > 6 for day in v):
            raise ValueError("days_of_week values must be between 0 (Monday) and 6 (Sunday)")
        return sorted(set(v))


class AvailabilityBase(BaseModel):
    start_time: datetime
    end_time: datetime

    @field_validator("end_time")
    @classmethod
    def validate_time_order(cls, v, info):
        """Ensure end time is after start time."""
        if info.data.get("start_time") and v <= info.data["start_time"]:
            raise ValueError("End time must be after start time")
        return v


class AvailabilityCreate(AvailabilityBase):
    """Schema for creating an availability block."""

    title: Optional[str] = Field(default=None, max_length=255)
    is_recurring: bool = False
    recurrence_pattern: Optional[RecurrencePattern] = None
    type: AvailabilityType = AvailabilityType.AVAILABLE
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_recurrence(self) -> "AvailabilityCreate":
        if self.is_recurring and self.recurrence_pattern is None:
            raise ValueError("recurrence_pattern is required for recurring availability")
        return self


class AvailabilityUpdate(BaseModel):
    """Schema for updating an availability block. All fields optional."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(default=None, max_length=255)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    type: Optional[AvailabilityType] = None
    is_available: Optional[bool] = None
    notes: Optional[str] = None

    @field_validator("end_time")
    @classmethod
    def validate_time_order(cls, v, info):
        """Ensure end time is after start time if both provided."""
        if v and info.data.get("start_time") and v <= info.data["start_time"]:
            raise ValueError("End time must be after start time")
        return v


class AvailabilityResponse(ORMResponseModel):
    id: str
    provider_id: str
    title: Optional[str] = None
    start_time: datetime
    end_time: datetime
    is_recurring: bool
    recurrence_pattern: Optional[RecurrencePattern] = None
    recurrence_parent_id: Optional[str] = None
    is_available: bool
    type: AvailabilityType
    notes: Optional[str] = None
