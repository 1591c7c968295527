"""
Database models for the provider calendar core.

- CalendarAvailability: provider-declared availability blocks
- JobSchedule: reservations of provider time against jobs
- RescheduleRequest: negotiated time changes for a job schedule
"""

from .availability import AVAILABILITY_TYPES, AvailabilityType, CalendarAvailability
from .job_schedule import TERMINAL_SCHEDULE_STATUSES, JobSchedule, ScheduleStatus
from .reschedule_request import RescheduleRequest, RescheduleStatus

__all__ = [
    "AVAILABILITY_TYPES",
    "AvailabilityType",
    "CalendarAvailability",
    "JobSchedule",
    "RescheduleRequest",
    "RescheduleStatus",
    "ScheduleStatus",
    "TERMINAL_SCHEDULE_STATUSES",
]
