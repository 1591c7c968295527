# backend/provider_calendar/repositories/job_schedule_repository.py
"""
Job Schedule Repository.

Listing queries use containment (a reservation is listed only when it lies
entirely inside the window) because they back calendar views, not conflict
checks. The automation queries back the reminder and lateness scans; the
``claim_*`` helpers re-read a single row under ``FOR UPDATE SKIP LOCKED`` so
concurrent scanners never process the same reservation twice.
"""

from datetime import datetime, timedelta
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException, ValidationException
from ..core.timezone_utils import ensure_utc, utc_now
from ..models.job_schedule import TERMINAL_SCHEDULE_STATUSES, JobSchedule, ScheduleStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class JobScheduleRepository(BaseRepository[JobSchedule]):
    """Repository for job schedule reservations."""

    def __init__(self, db: Session):
        super().__init__(db, JobSchedule)

    # Listing queries

    def find_in_range(
        self,
        provider_id: str,
        start: datetime,
        end: datetime,
        status: Optional[str] = None,
    ) -> List[JobSchedule]:
        """
        Reservations fully contained in ``[start, end]``.

        Args:
            provider_id: Owning provider
            start: Window start (inclusive)
            end: Window end (inclusive)
            status: Optional status filter

        Returns:
            Reservations ordered by scheduled start
        """
        start, end = ensure_utc(start), ensure_utc(end)
        try:
            query = self.db.query(JobSchedule).filter(
                JobSchedule.provider_id == provider_id,
                JobSchedule.scheduled_start_time >= start,
                JobSchedule.scheduled_end_time <= end,
            )
            if status:
                query = query.filter(JobSchedule.status == status)
            return query.order_by(JobSchedule.scheduled_start_time).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting schedules in range: {str(e)}")
            raise RepositoryException(f"Failed to get schedules: {str(e)}")

    def find_upcoming(
        self, provider_id: str, limit: int = 10, now: Optional[datetime] = None
    ) -> List[JobSchedule]:
        """Scheduled reservations starting at or after ``now``, soonest first."""
        now = ensure_utc(now) or utc_now()
        return self._execute_query(
            self._build_query()
            .filter(
                JobSchedule.provider_id == provider_id,
                JobSchedule.status == ScheduleStatus.SCHEDULED.value,
                JobSchedule.scheduled_start_time >= now,
            )
            .order_by(JobSchedule.scheduled_start_time)
            .limit(limit)
        )

    def find_by_provider(self, provider_id: str, status: Optional[str] = None) -> List[JobSchedule]:
        query = self._build_query().filter(JobSchedule.provider_id == provider_id)
        if status:
            query = query.filter(JobSchedule.status == status)
        return self._execute_query(query.order_by(JobSchedule.scheduled_start_time))

    def find_overlapping_active(
        self,
        provider_id: str,
        start: datetime,
        end: datetime,
        exclude_id: Optional[str] = None,
    ) -> List[JobSchedule]:
        """Non-terminal reservations intersecting the half-open window."""
        start, end = ensure_utc(start), ensure_utc(end)
        query = self._build_query().filter(
            JobSchedule.provider_id == provider_id,
            JobSchedule.status.notin_(list(TERMINAL_SCHEDULE_STATUSES)),
            JobSchedule.scheduled_start_time < end,
            JobSchedule.scheduled_end_time > start,
        )
        if exclude_id:
            query = query.filter(JobSchedule.id != exclude_id)
        return self._execute_query(query.order_by(JobSchedule.scheduled_start_time))

    # Automation queries

    def find_needing_reminder(
        self, minutes_before: int, now: Optional[datetime] = None
    ) -> List[JobSchedule]:
        """
        Scheduled reservations without a reminder that start within the lead time.

        Window is ``[now, now + minutes_before]``, both ends inclusive.
        """
        now = ensure_utc(now) or utc_now()
        horizon = now + timedelta(minutes=minutes_before)
        return self._execute_query(
            self._build_query()
            .filter(
                JobSchedule.status == ScheduleStatus.SCHEDULED.value,
                JobSchedule.reminder_sent.is_(False),
                JobSchedule.scheduled_start_time >= now,
                JobSchedule.scheduled_start_time <= horizon,
            )
            .order_by(JobSchedule.scheduled_start_time)
        )

    def find_late(
        self,
        now: Optional[datetime] = None,
        grace_minutes: int = 5,
        window_minutes: int = 60,
    ) -> List[JobSchedule]:
        """
        Scheduled reservations whose start passed without the job being started.

        Window is ``(now - window_minutes, now - grace_minutes)``, both ends
        exclusive; anything older than the window is no longer alerted.
        """
        now = ensure_utc(now) or utc_now()
        newest = now - timedelta(minutes=grace_minutes)
        oldest = now - timedelta(minutes=window_minutes)
        return self._execute_query(
            self._build_query()
            .filter(
                JobSchedule.status == ScheduleStatus.SCHEDULED.value,
                JobSchedule.lateness_alert_sent.is_(False),
                JobSchedule.scheduled_start_time < newest,
                JobSchedule.scheduled_start_time > oldest,
            )
            .order_by(JobSchedule.scheduled_start_time)
        )

    def claim_for_reminder(self, schedule_id: str) -> Optional[JobSchedule]:
        """Lock one reservation that still needs its reminder, or return None."""
        return self._claim(schedule_id, JobSchedule.reminder_sent.is_(False))

    def claim_for_lateness_alert(self, schedule_id: str) -> Optional[JobSchedule]:
        """Lock one reservation that still needs its lateness alert, or return None."""
        return self._claim(schedule_id, JobSchedule.lateness_alert_sent.is_(False))

    def _claim(self, schedule_id: str, flag_clause: Any) -> Optional[JobSchedule]:
        try:
            return (
                self.db.query(JobSchedule)
                .filter(
                    JobSchedule.id == schedule_id,
                    JobSchedule.status == ScheduleStatus.SCHEDULED.value,
                    flag_clause,
                )
                .populate_existing()
                .with_for_update(skip_locked=True)
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error claiming job schedule {schedule_id}: {str(e)}")
            raise RepositoryException(f"Failed to claim job schedule: {str(e)}")

    def _validate(self, values: Dict[str, Any], existing: Optional[JobSchedule]) -> None:
        for key in ("scheduled_start_time", "scheduled_end_time", "actual_start_time", "actual_end_time"):
            if key in values:
                values[key] = ensure_utc(values[key])

        start = values.get(
            "scheduled_start_time", existing.scheduled_start_time if existing else None
        )
        end = values.get("scheduled_end_time", existing.scheduled_end_time if existing else None)
        if start is None or end is None:
            raise ValidationException("scheduled_start_time and scheduled_end_time are required")
        if end <= start:
            raise ValidationException(
                "Scheduled end time must be after scheduled start time",
                details={"scheduled_start_time": start.isoformat(), "scheduled_end_time": end.isoformat()},
            )

    def clear_availability_links(self, availability_ids: List[str]) -> int:
        """Detach reservations from blocks that are about to be deleted."""
        if not availability_ids:
            return 0
        try:
            cleared = (
                self.db.query(JobSchedule)
                .filter(JobSchedule.calendar_availability_id.in_(availability_ids))
                .update({"calendar_availability_id": None}, synchronize_session="fetch")
            )
            self.db.flush()
            return cleared
        except SQLAlchemyError as e:
            self.logger.error(f"Error clearing availability links: {str(e)}")
            raise RepositoryException(f"Failed to clear availability links: {str(e)}")
