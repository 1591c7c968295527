# backend/provider_calendar/repositories/factory.py
"""
Repository Factory for the provider calendar core.

Provides centralized creation of repository instances so services never
construct repositories with ad-hoc arguments.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .availability_repository import AvailabilityRepository
    from .job_schedule_repository import JobScheduleRepository
    from .reschedule_request_repository import RescheduleRequestRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_availability_repository(db: Session) -> "AvailabilityRepository":
        """Create repository for calendar availability blocks."""
        from .availability_repository import AvailabilityRepository

        return AvailabilityRepository(db)

    @staticmethod
    def create_job_schedule_repository(db: Session) -> "JobScheduleRepository":
        """Create repository for job schedule reservations."""
        from .job_schedule_repository import JobScheduleRepository

        return JobScheduleRepository(db)

    @staticmethod
    def create_reschedule_request_repository(db: Session) -> "RescheduleRequestRepository":
        """Create repository for reschedule requests."""
        from .reschedule_request_repository import RescheduleRequestRepository

        return RescheduleRequestRepository(db)
