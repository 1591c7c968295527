# backend/provider_calendar/repositories/__init__.py
"""Data access layer. Repositories flush but never commit."""

from .availability_repository import AvailabilityRepository
from .base_repository import BaseRepository
from .factory import RepositoryFactory
from .job_schedule_repository import JobScheduleRepository
from .reschedule_request_repository import RescheduleRequestRepository

__all__ = [
    "AvailabilityRepository",
    "BaseRepository",
    "JobScheduleRepository",
    "RepositoryFactory",
    "RescheduleRequestRepository",
]
