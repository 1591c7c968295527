# backend/provider_calendar/services/availability_service.py
"""
Availability Service for the provider calendar core.

Orchestrates the three repositories:
- Availability block CRUD with per-provider conflict detection
- Auto-blocking provider time when a job is accepted
- Calendar views and idle gap detection
- Job schedule lifecycle (start, pause, complete, cancel)
- Reschedule negotiation between the two parties of a job
- Reminder and lateness scans driven by the automation scheduler

Every mutating operation validates and checks conflicts before its first
write, commits through ``transaction()``, and only then dispatches
notifications. Notification failures are logged and never raised.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
from typing import Any, Dict, List, Optional, Protocol, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    AvailabilityConflictException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
)
from ..core.timezone_utils import Clock, ensure_utc, utc_now
from ..models.availability import AVAILABILITY_TYPES, AvailabilityType, CalendarAvailability
from ..models.job_schedule import TERMINAL_SCHEDULE_STATUSES, JobSchedule, ScheduleStatus
from ..models.reschedule_request import RescheduleRequest, RescheduleStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.availability_repository import AvailabilityRepository
from ..repositories.factory import RepositoryFactory
from ..repositories.job_schedule_repository import JobScheduleRepository
from ..repositories.reschedule_request_repository import RescheduleRequestRepository
from .base import BaseService
from .notification_dispatcher import (
    TIME_CRITICAL_CHANNELS,
    LoggingNotificationDispatcher,
    Notification,
    NotificationDispatcher,
    NotificationPriority,
    NotificationType,
)
from .recurrence import RecurringBlock, build_block

logger = logging.getLogger(__name__)

VIEW_SPANS = {
    "day": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}

UPDATABLE_AVAILABILITY_FIELDS = frozenset(
    {"title", "start_time", "end_time", "type", "is_available", "notes"}
)

JOB_BLOCK_TITLE = "Job Scheduled"


class JobLookup(Protocol):
    """Lookup into the external job catalogue, used only to validate job ids."""

    def find_by_id(self, job_id: str) -> Optional[Any]:
        ...


@dataclass
class CalendarView:
    """Read-only snapshot of a provider's calendar for one window."""

    view_type: str
    start_date: datetime
    end_date: datetime
    availability: List[CalendarAvailability] = field(default_factory=list)
    schedules: List[JobSchedule] = field(default_factory=list)


@dataclass(frozen=True)
class ScheduleGap:
    start: datetime
    end: datetime

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


def _require_interval(start: Optional[datetime], end: Optional[datetime]) -> Tuple[datetime, datetime]:
    start, end = ensure_utc(start), ensure_utc(end)
    if start is None or end is None:
        raise ValidationException("Start and end times are required")
    if end <= start:
        raise ValidationException(
            "End time must be after start time",
            details={"start_time": start.isoformat(), "end_time": end.isoformat()},
        )
    return start, end


def _normalize_type(block_type: Any) -> str:
    if isinstance(block_type, AvailabilityType):
        return block_type.value
    if block_type not in AVAILABILITY_TYPES:
        raise ValidationException(
            f"Unknown availability type '{block_type}'",
            details={"allowed": list(AVAILABILITY_TYPES)},
        )
    return block_type


class AvailabilityService(BaseService):
    """
    Service layer for provider calendars and job schedules.

    The dispatcher, clock and job lookup are injectable so callers and tests
    control side effects and time.
    """

    def __init__(
        self,
        db: Session,
        dispatcher: Optional[NotificationDispatcher] = None,
        clock: Optional[Clock] = None,
        job_lookup: Optional[JobLookup] = None,
        availability_repository: Optional[AvailabilityRepository] = None,
        schedule_repository: Optional[JobScheduleRepository] = None,
        reschedule_repository: Optional[RescheduleRequestRepository] = None,
    ):
        super().__init__(db)
        self.dispatcher = dispatcher or LoggingNotificationDispatcher()
        self.clock = clock or utc_now
        self.job_lookup = job_lookup
        self.availability_repository = (
            availability_repository or RepositoryFactory.create_availability_repository(db)
        )
        self.schedule_repository = (
            schedule_repository or RepositoryFactory.create_job_schedule_repository(db)
        )
        self.reschedule_repository = (
            reschedule_repository or RepositoryFactory.create_reschedule_request_repository(db)
        )

    def _now(self) -> datetime:
        return ensure_utc(self.clock())

    # Availability blocks

    @BaseService.measure_operation("create_availability")
    def create_availability(
        self,
        provider_id: str,
        start_time: datetime,
        end_time: datetime,
        title: Optional[str] = None,
        type: Any = AvailabilityType.AVAILABLE,
        is_available: Optional[bool] = None,
        is_recurring: bool = False,
        recurrence_pattern: Optional[Any] = None,
        notes: Optional[str] = None,
    ) -> CalendarAvailability:
        """
        Create an availability block, or a materialized recurring series.

        Every occurrence is checked against the provider's existing available
        blocks and against the other occurrences; one conflict rejects the
        whole series and nothing is written.

        Returns:
            The created block (the first occurrence for a recurring series)

        Raises:
            ValidationException: Bad interval, type or recurrence pattern
            AvailabilityConflictException: Overlap with an available block
        """
        block_type = _normalize_type(type)
        if is_recurring and recurrence_pattern is None:
            raise ValidationException("recurrence_pattern is required for recurring availability")

        block = build_block(start_time, end_time, recurrence_pattern if is_recurring else None)
        instances = block.instances
        for (_, previous_end), (next_start, _) in zip(instances, instances[1:]):
            if next_start < previous_end:
                raise ValidationException(
                    "Recurring occurrences overlap each other",
                    details={"occurrence_start": next_start.isoformat()},
                )

        with self.transaction():
            self.availability_repository.lock_provider(provider_id)

            conflicting_ids: List[str] = []
            for occurrence_start, occurrence_end in instances:
                for existing in self.availability_repository.find_overlapping(
                    provider_id, occurrence_start, occurrence_end
                ):
                    if existing.id not in conflicting_ids:
                        conflicting_ids.append(existing.id)
            if conflicting_ids:
                self.logger.info(
                    f"Availability for provider {provider_id} conflicts with {len(conflicting_ids)} block(s)"
                )
                raise AvailabilityConflictException(provider_id, conflicting_ids)

            attrs = {
                "provider_id": provider_id,
                "title": title,
                "type": block_type,
                "is_available": is_available,
                "notes": notes,
            }
            first_start, first_end = instances[0]
            if isinstance(block, RecurringBlock):
                created = self.availability_repository.create(
                    start_time=first_start,
                    end_time=first_end,
                    is_recurring=True,
                    recurrence_pattern=block.pattern.model_dump(mode="json"),
                    **attrs,
                )
                for occurrence_start, occurrence_end in instances[1:]:
                    self.availability_repository.create(
                        start_time=occurrence_start,
                        end_time=occurrence_end,
                        recurrence_parent_id=created.id,
                        **attrs,
                    )
            else:
                created = self.availability_repository.create(
                    start_time=first_start, end_time=first_end, **attrs
                )

        self.logger.info(
            f"Created {block_type} availability {created.id} for provider {provider_id} "
            f"({len(instances)} occurrence(s))"
        )
        return created

    @BaseService.measure_operation("get_availability")
    def get_availability(
        self, provider_id: str, start: datetime, end: datetime
    ) -> List[CalendarAvailability]:
        """Blocks of any type intersecting the window, earliest first."""
        start, end = _require_interval(start, end)
        return self.availability_repository.find_in_range(provider_id, start, end)

    @BaseService.measure_operation("update_availability")
    def update_availability(self, availability_id: str, **changes: Any) -> CalendarAvailability:
        """
        Update a block, re-checking it against the provider's other available blocks.

        Raises:
            NotFoundException: Block does not exist
            ValidationException: Unknown field, bad interval or type
            AvailabilityConflictException: Updated block would overlap
        """
        unknown = set(changes) - UPDATABLE_AVAILABILITY_FIELDS
        if unknown:
            raise ValidationException(
                "Unsupported availability fields",
                details={"fields": sorted(unknown)},
            )
        changes = {key: value for key, value in changes.items() if value is not None}
        if "type" in changes:
            changes["type"] = _normalize_type(changes["type"])
            changes.setdefault("is_available", changes["type"] == AvailabilityType.AVAILABLE.value)

        with self.transaction():
            existing = self.availability_repository.get_by_id(availability_id)
            if not existing:
                raise NotFoundException(f"Availability {availability_id} not found")

            start, end = _require_interval(
                changes.get("start_time", existing.start_time),
                changes.get("end_time", existing.end_time),
            )
            # Same rule as create: any block type is checked against available blocks
            self.availability_repository.lock_provider(existing.provider_id)
            conflicts = self.availability_repository.find_overlapping(
                existing.provider_id, start, end, exclude_id=existing.id
            )
            if conflicts:
                raise AvailabilityConflictException(
                    existing.provider_id, [block.id for block in conflicts]
                )

            updated = self.availability_repository.update(availability_id, **changes)

        self.logger.info(f"Updated availability {availability_id}")
        return updated

    @BaseService.measure_operation("delete_availability")
    def delete_availability(self, availability_id: str) -> None:
        """
        Delete a block and any occurrences materialized from it.

        Reservations linked to a deleted block survive with the link cleared.
        """
        with self.transaction():
            existing = self.availability_repository.get_by_id(availability_id)
            if not existing:
                raise NotFoundException(f"Availability {availability_id} not found")

            occurrence_ids = [
                occurrence.id
                for occurrence in self.availability_repository.find_occurrences(existing.id)
            ]
            self.schedule_repository.clear_availability_links(occurrence_ids + [existing.id])
            deleted = self.availability_repository.delete_series(existing)

        self.logger.info(f"Deleted availability {availability_id} ({len(deleted)} row(s))")

    # Job schedules

    @BaseService.measure_operation("auto_block_time_for_job")
    def auto_block_time_for_job(
        self,
        provider_id: str,
        job_id: str,
        application_id: Optional[str],
        start_time: datetime,
        end_time: datetime,
        location: Optional[Dict[str, Any]] = None,
    ) -> JobSchedule:
        """
        Reserve provider time for an accepted job.

        Always creates one scheduled reservation. A busy block titled
        "Job Scheduled" is created and linked only when no available-type
        block overlaps the window.
        """
        start, end = _require_interval(start_time, end_time)
        if self.job_lookup is not None and self.job_lookup.find_by_id(job_id) is None:
            raise NotFoundException(f"Job {job_id} not found")

        with self.transaction():
            self.availability_repository.lock_provider(provider_id)

            overlapping_available = self.availability_repository.find_overlapping(
                provider_id, start, end
            )
            double_booked = self.schedule_repository.find_overlapping_active(provider_id, start, end)
            if double_booked:
                self.logger.warning(
                    "Job %s overlaps %d active reservation(s) for provider %s",
                    job_id,
                    len(double_booked),
                    provider_id,
                )

            schedule = self.schedule_repository.create(
                provider_id=provider_id,
                job_id=job_id,
                application_id=application_id,
                scheduled_start_time=start,
                scheduled_end_time=end,
                location=location,
                status=ScheduleStatus.SCHEDULED.value,
            )

            if not overlapping_available:
                busy_block = self.availability_repository.create(
                    provider_id=provider_id,
                    title=JOB_BLOCK_TITLE,
                    start_time=start,
                    end_time=end,
                    type=AvailabilityType.BUSY.value,
                    is_available=False,
                )
                schedule.calendar_availability_id = busy_block.id
                self.schedule_repository.flush()

        self.logger.info(
            f"Scheduled job {job_id} for provider {provider_id} as {schedule.id} "
            f"(blocked={schedule.calendar_availability_id is not None})"
        )
        self._notify(
            Notification(
                target_user_id=provider_id,
                type=NotificationType.JOB_SCHEDULED,
                title="Job Scheduled",
                message=f"A job has been scheduled for {start.date().isoformat()}",
                data={"job_id": job_id, "job_schedule_id": schedule.id},
                priority=NotificationPriority.HIGH,
            )
        )
        return schedule

    @BaseService.measure_operation("get_calendar_view")
    def get_calendar_view(
        self,
        provider_id: str,
        view_type: str = "week",
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> CalendarView:
        """
        Compose availability and reservations for one window.

        ``end`` defaults to one day, seven days or thirty days after
        ``start`` for day, week and month views; ``start`` defaults to now.
        """
        if view_type not in VIEW_SPANS:
            raise ValidationException(
                f"Unknown view type '{view_type}'",
                details={"allowed": list(VIEW_SPANS)},
            )
        start = ensure_utc(start) or self._now()
        end = ensure_utc(end) or start + VIEW_SPANS[view_type]
        start, end = _require_interval(start, end)

        return CalendarView(
            view_type=view_type,
            start_date=start,
            end_date=end,
            availability=self.availability_repository.find_in_range(provider_id, start, end),
            schedules=self.schedule_repository.find_in_range(provider_id, start, end),
        )

    @BaseService.measure_operation("get_schedules")
    def get_schedules(
        self,
        provider_id: str,
        start: datetime,
        end: datetime,
        status: Optional[str] = None,
    ) -> List[JobSchedule]:
        start, end = _require_interval(start, end)
        return self.schedule_repository.find_in_range(provider_id, start, end, status=status)

    @BaseService.measure_operation("get_upcoming_schedules")
    def get_upcoming_schedules(self, provider_id: str, limit: Optional[int] = None) -> List[JobSchedule]:
        return self.schedule_repository.find_upcoming(
            provider_id,
            limit=settings.upcoming_schedules_limit if limit is None else limit,
            now=self._now(),
        )

    def _get_schedule(self, schedule_id: str, for_update: bool = False) -> JobSchedule:
        schedule = self.schedule_repository.get_by_id(schedule_id, for_update=for_update)
        if not schedule:
            raise NotFoundException(f"Job schedule {schedule_id} not found")
        return schedule

    @BaseService.measure_operation("start_schedule")
    def start_schedule(self, schedule_id: str) -> JobSchedule:
        """Move a scheduled or rescheduled reservation to in_progress."""
        now = self._now()
        with self.transaction():
            schedule = self._get_schedule(schedule_id, for_update=True)
            schedule.start(now)
            self.schedule_repository.flush()

        self._notify(
            Notification(
                target_user_id=schedule.provider_id,
                type=NotificationType.JOB_STARTED,
                title="Job Started",
                message="Your job has started",
                data={"job_id": schedule.job_id, "job_schedule_id": schedule.id},
            )
        )
        return schedule

    @BaseService.measure_operation("pause_schedule")
    def pause_schedule(self, schedule_id: str) -> JobSchedule:
        """
        Record a pause on an in-progress reservation.

        Pause time is tracked by the job progress engine; the reservation
        itself stays in_progress.
        """
        now = self._now()
        with self.transaction():
            schedule = self._get_schedule(schedule_id, for_update=True)
            if schedule.status != ScheduleStatus.IN_PROGRESS.value:
                raise InvalidStateException(
                    entity="job schedule",
                    entity_id=schedule.id,
                    current_status=schedule.status,
                    action="pause",
                )
            schedule.updated_at = now
            self.schedule_repository.flush()

        self.logger.info(f"Job schedule {schedule_id} paused")
        return schedule

    @BaseService.measure_operation("complete_schedule")
    def complete_schedule(self, schedule_id: str) -> JobSchedule:
        now = self._now()
        with self.transaction():
            schedule = self._get_schedule(schedule_id, for_update=True)
            schedule.complete(now)
            self.schedule_repository.flush()

        self._notify(
            Notification(
                target_user_id=schedule.provider_id,
                type=NotificationType.JOB_COMPLETED,
                title="Job Completed",
                message="Your job has been marked as completed",
                data={"job_id": schedule.job_id, "job_schedule_id": schedule.id},
            )
        )
        return schedule

    @BaseService.measure_operation("cancel_schedule")
    def cancel_schedule(self, schedule_id: str, reason: Optional[str] = None) -> JobSchedule:
        """Cancel a reservation and withdraw any pending reschedule requests against it."""
        now = self._now()
        with self.transaction():
            schedule = self._get_schedule(schedule_id, for_update=True)
            schedule.cancel(now, reason)
            self.schedule_repository.flush()

            pending = self.reschedule_repository.find_by_schedule(
                schedule.id, status=RescheduleStatus.PENDING.value
            )
            for request in pending:
                self.reschedule_repository.transition_status(
                    request.id, RescheduleStatus.CANCELLED.value, responded_at=now
                )

        self.logger.info(
            f"Cancelled job schedule {schedule_id} and {len(pending)} pending reschedule request(s)"
        )
        return schedule

    # Reschedule negotiation

    @BaseService.measure_operation("create_reschedule_request")
    def create_reschedule_request(
        self,
        job_schedule_id: str,
        requested_by: str,
        requested_for: str,
        requested_start_time: datetime,
        requested_end_time: datetime,
        reason: str,
    ) -> RescheduleRequest:
        """
        Propose new times for a reservation.

        The reservation's current times are snapshotted onto the request.
        """
        start, end = _require_interval(requested_start_time, requested_end_time)
        if not reason or not reason.strip():
            raise ValidationException("A reason is required for a reschedule request")

        with self.transaction():
            schedule = self._get_schedule(job_schedule_id)
            if schedule.is_terminal:
                raise InvalidStateException(
                    entity="job schedule",
                    entity_id=schedule.id,
                    current_status=schedule.status,
                    action="reschedule",
                )

            request = self.reschedule_repository.create(
                job_schedule_id=schedule.id,
                job_id=schedule.job_id,
                requested_by=requested_by,
                requested_for=requested_for,
                original_start_time=schedule.scheduled_start_time,
                original_end_time=schedule.scheduled_end_time,
                requested_start_time=start,
                requested_end_time=end,
                reason=reason.strip(),
                status=RescheduleStatus.PENDING.value,
            )

        self._notify(
            Notification(
                target_user_id=requested_for,
                type=NotificationType.RESCHEDULE_REQUEST,
                title="Reschedule Request",
                message="A reschedule request has been submitted for a job",
                data={"reschedule_request_id": request.id, "job_schedule_id": schedule.id},
                priority=NotificationPriority.HIGH,
            )
        )
        return request

    def _get_request(self, request_id: str) -> RescheduleRequest:
        request = self.reschedule_repository.get_by_id(request_id)
        if not request:
            raise NotFoundException(f"Reschedule request {request_id} not found")
        return request

    def _require_pending(self, request: RescheduleRequest, action: str) -> None:
        if not request.is_pending:
            raise InvalidStateException(
                entity="reschedule request",
                entity_id=request.id,
                current_status=request.status,
                action=action,
            )

    def _transition_request(
        self, request: RescheduleRequest, new_status: str, action: str, **fields: Any
    ) -> None:
        """Compare-and-set out of pending; losing the race is an invalid state."""
        if not self.reschedule_repository.transition_status(request.id, new_status, **fields):
            self.db.refresh(request)
            raise InvalidStateException(
                entity="reschedule request",
                entity_id=request.id,
                current_status=request.status,
                action=action,
            )

    @BaseService.measure_operation("approve_reschedule_request")
    def approve_reschedule_request(self, request_id: str, approved_by: str) -> RescheduleRequest:
        """
        Approve a pending request.

        Request, reservation and linked busy block change in one transaction.
        """
        now = self._now()
        with self.transaction():
            request = self._get_request(request_id)
            self._require_pending(request, "approve")

            schedule = self._get_schedule(request.job_schedule_id, for_update=True)
            if schedule.is_terminal:
                raise InvalidStateException(
                    entity="job schedule",
                    entity_id=schedule.id,
                    current_status=schedule.status,
                    action="reschedule",
                )

            self._transition_request(
                request,
                RescheduleStatus.APPROVED.value,
                "approve",
                approved_by=approved_by,
                approved_at=now,
                responded_at=now,
            )

            schedule.reschedule(request.requested_start_time, request.requested_end_time)
            if schedule.calendar_availability_id:
                block = self.availability_repository.get_by_id(schedule.calendar_availability_id)
                if block:
                    block.shift_to(request.requested_start_time, request.requested_end_time)
            self.schedule_repository.flush()

        self.logger.info(f"Reschedule request {request_id} approved by {approved_by}")
        self._notify(
            Notification(
                target_user_id=request.requested_by,
                type=NotificationType.RESCHEDULE_APPROVED,
                title="Reschedule Approved",
                message="Your reschedule request has been approved",
                data={"reschedule_request_id": request.id, "job_schedule_id": schedule.id},
                priority=NotificationPriority.HIGH,
            )
        )
        return request

    @BaseService.measure_operation("reject_reschedule_request")
    def reject_reschedule_request(
        self, request_id: str, rejection_reason: Optional[str] = None
    ) -> RescheduleRequest:
        """Reject a pending request. The reservation is never touched."""
        now = self._now()
        with self.transaction():
            request = self._get_request(request_id)
            self._require_pending(request, "reject")
            self._transition_request(
                request,
                RescheduleStatus.REJECTED.value,
                "reject",
                rejection_reason=rejection_reason,
                responded_at=now,
            )

        self._notify(
            Notification(
                target_user_id=request.requested_by,
                type=NotificationType.RESCHEDULE_REJECTED,
                title="Reschedule Rejected",
                message="Your reschedule request has been rejected",
                data={"reschedule_request_id": request.id, "reason": rejection_reason},
                priority=NotificationPriority.MEDIUM,
            )
        )
        return request

    @BaseService.measure_operation("cancel_reschedule_request")
    def cancel_reschedule_request(self, request_id: str, cancelled_by: str) -> RescheduleRequest:
        """Withdraw a pending request."""
        now = self._now()
        with self.transaction():
            request = self._get_request(request_id)
            self._require_pending(request, "cancel")
            self._transition_request(
                request, RescheduleStatus.CANCELLED.value, "cancel", responded_at=now
            )

        self._notify(
            Notification(
                target_user_id=request.other_party(cancelled_by),
                type=NotificationType.RESCHEDULE_CANCELLED,
                title="Reschedule Cancelled",
                message="A reschedule request has been withdrawn",
                data={"reschedule_request_id": request.id},
                priority=NotificationPriority.LOW,
            )
        )
        return request

    def get_reschedule_requests(
        self, user_id: str, status: Optional[str] = None
    ) -> List[RescheduleRequest]:
        return self.reschedule_repository.find_for_user(user_id, status=status)

    def get_pending_requests_for(self, user_id: str) -> List[RescheduleRequest]:
        return self.reschedule_repository.find_pending_for(user_id)

    # Automation scans

    @BaseService.measure_operation("send_job_start_reminders")
    def send_job_start_reminders(self, minutes_before: Optional[int] = None) -> int:
        """
        Remind providers of reservations starting within the lead time.

        Each candidate is claimed and flagged in its own transaction, and the
        reminder goes out only once that flag is committed. A failure on one
        reservation never blocks the rest, and neither concurrent scans nor a
        failed commit can double-notify.

        Returns:
            Number of reservations flagged
        """
        if minutes_before is None:
            minutes_before = settings.reminder_minutes_before
        now = self._now()
        candidate_ids = [
            schedule.id
            for schedule in self.schedule_repository.find_needing_reminder(minutes_before, now=now)
        ]

        flagged = 0
        for schedule_id in candidate_ids:
            try:
                with self.transaction():
                    schedule = self.schedule_repository.claim_for_reminder(schedule_id)
                    if schedule is None:
                        continue
                    schedule.mark_reminder_sent(now)
                    self.schedule_repository.flush()
                    notification = Notification(
                        target_user_id=schedule.provider_id,
                        type=NotificationType.JOB_START_REMINDER,
                        title="Job Starting Soon",
                        message=f"Your job starts in {minutes_before} minutes",
                        data={"job_schedule_id": schedule.id, "job_id": schedule.job_id},
                        priority=NotificationPriority.HIGH,
                        channels=list(TIME_CRITICAL_CHANNELS),
                    )
            except Exception as e:
                self.logger.error(f"Failed to send start reminder for job schedule {schedule_id}: {e}", exc_info=True)
                continue

            self._notify(notification)
            flagged += 1

        if candidate_ids:
            self.logger.info(f"Sent {flagged} job start reminder(s) of {len(candidate_ids)} candidate(s)")
        return flagged

    @BaseService.measure_operation("send_lateness_alerts")
    def send_lateness_alerts(self) -> int:
        """
        Alert providers whose reservations started without them.

        Same claim, flag, commit, then dispatch sequence as the reminder scan.

        Returns:
            Number of reservations flagged
        """
        now = self._now()
        candidate_ids = [
            schedule.id
            for schedule in self.schedule_repository.find_late(
                now=now,
                grace_minutes=settings.lateness_grace_minutes,
                window_minutes=settings.lateness_window_minutes,
            )
        ]

        flagged = 0
        for schedule_id in candidate_ids:
            try:
                with self.transaction():
                    schedule = self.schedule_repository.claim_for_lateness_alert(schedule_id)
                    if schedule is None:
                        continue
                    schedule.mark_lateness_alert_sent()
                    self.schedule_repository.flush()
                    notification = Notification(
                        target_user_id=schedule.provider_id,
                        type=NotificationType.JOB_LATENESS_ALERT,
                        title="Job Started - Running Late",
                        message="You were scheduled to start a job. Please update your status.",
                        data={"job_schedule_id": schedule.id, "job_id": schedule.job_id},
                        priority=NotificationPriority.URGENT,
                        channels=list(TIME_CRITICAL_CHANNELS),
                    )
            except Exception as e:
                self.logger.error(f"Failed to send lateness alert for job schedule {schedule_id}: {e}", exc_info=True)
                continue

            self._notify(notification)
            flagged += 1

        if candidate_ids:
            self.logger.info(f"Sent {flagged} lateness alert(s) of {len(candidate_ids)} candidate(s)")
        return flagged

    # Gap detection

    @BaseService.measure_operation("find_schedule_gaps")
    def find_schedule_gaps(
        self,
        provider_id: str,
        start: datetime,
        end: datetime,
        min_gap_minutes: Optional[int] = None,
    ) -> List[ScheduleGap]:
        """
        Idle stretches between active reservations inside the window.

        Includes the stretch before the first and after the last reservation;
        gaps shorter than ``min_gap_minutes`` are dropped.
        """
        start, end = _require_interval(start, end)
        if min_gap_minutes is None:
            min_gap_minutes = settings.idle_gap_min_minutes
        minimum = timedelta(minutes=min_gap_minutes)

        schedules = [
            schedule
            for schedule in self.schedule_repository.find_in_range(provider_id, start, end)
            if schedule.status not in TERMINAL_SCHEDULE_STATUSES
        ]
        schedules.sort(key=lambda schedule: schedule.scheduled_start_time)

        gaps: List[ScheduleGap] = []
        cursor = start
        for schedule in schedules:
            if schedule.scheduled_start_time > cursor:
                gaps.append(ScheduleGap(start=cursor, end=schedule.scheduled_start_time))
            cursor = max(cursor, schedule.scheduled_end_time)
        if cursor < end:
            gaps.append(ScheduleGap(start=cursor, end=end))

        return [gap for gap in gaps if gap.end - gap.start >= minimum]

    def _notify(self, notification: Notification) -> bool:
        """Best-effort dispatch. Returns False when the dispatcher failed."""
        try:
            self.dispatcher.send(notification)
        except Exception as e:
            self.logger.error(
                f"Failed to dispatch {notification.type} notification to "
                f"{notification.target_user_id}: {e}"
            )
            prometheus_metrics.record_notification(notification.type, "failed")
            return False
        prometheus_metrics.record_notification(notification.type, "sent")
        return True
