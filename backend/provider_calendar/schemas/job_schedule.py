# backend/provider_calendar/schemas/job_schedule.py
"""Job schedule and calendar view response schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from ..models.job_schedule import ScheduleStatus
from .availability import AvailabilityResponse
from .base import ORMResponseModel


class JobScheduleResponse(ORMResponseModel):
    id: str
    provider_id: str
    job_id: str
    application_id: Optional[str] = None
    scheduled_start_time: datetime
    scheduled_end_time: datetime
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    status: ScheduleStatus
    calendar_availability_id: Optional[str] = None
    time_entry_id: Optional[str] = None
    location: Optional[Dict[str, Any]] = None
    reminder_sent: bool
    reminder_sent_at: Optional[datetime] = None
    lateness_alert_sent: bool


class ScheduleGapResponse(ORMResponseModel):
    start: datetime
    end: datetime
    duration_minutes: int


class CalendarViewResponse(ORMResponseModel):
    view_type: str
    start_date: datetime
    end_date: datetime
    availability: List[AvailabilityResponse]
    schedules: List[JobScheduleResponse]


class AutomationRunResponse(ORMResponseModel):
    """Summary of one automation tick, built from ``AutomationRunResult``."""

    ran_at: datetime
    reminders_sent: int
    lateness_alerts_sent: int
    errors: List[str]
    succeeded: bool
