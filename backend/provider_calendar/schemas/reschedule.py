# backend/provider_calendar/schemas/reschedule.py
"""Reschedule request schemas."""

from datetime import datetime
from typing import Optional

from pydantic import Field

from ..models.reschedule_request import RescheduleStatus
from .availability import AvailabilityBase
from .base import ORMResponseModel, StandardizedModel


class RescheduleRequestCreate(AvailabilityBase):
    """Proposed new interval; ``start_time``/``end_time`` are the requested times."""

    job_schedule_id: str
    reason: str = Field(min_length=1)


class RescheduleRejection(StandardizedModel):
    rejection_reason: Optional[str] = None


class RescheduleRequestResponse(ORMResponseModel):
    id: str
    job_schedule_id: str
    job_id: str
    requested_by: str
    requested_for: str
    original_start_time: datetime
    original_end_time: datetime
    requested_start_time: datetime
    requested_end_time: datetime
    reason: str
    status: RescheduleStatus
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
