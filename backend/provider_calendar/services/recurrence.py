# backend/provider_calendar/services/recurrence.py
"""
Recurrence expansion for availability blocks.

A requested block is either a ``SingleBlock`` or a ``RecurringBlock``. A
recurring block is expanded eagerly into concrete intervals so conflict
checks and storage only ever deal with plain ``(start, end)`` pairs.

Expansion rules:
- daily: every ``interval`` days
- weekly: every ``interval`` weeks, on each of ``days_of_week`` (Monday=0);
  defaults to the weekday of the first start
- monthly: every ``interval`` months on the same day of month; months that
  lack that day are skipped

The series stops at ``end_date`` (inclusive), after ``occurrences``
instances, at the horizon, or at the hard cap, whichever comes first.
"""

from calendar import monthrange
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from pydantic import ValidationError

from ..core.config import settings
from ..core.exceptions import ValidationException
from ..core.timezone_utils import ensure_utc
from ..schemas.availability import RecurrenceFrequency, RecurrencePattern

logger = logging.getLogger(__name__)

Interval = Tuple[datetime, datetime]


@dataclass(frozen=True)
class SingleBlock:
    start: datetime
    end: datetime

    @property
    def instances(self) -> List[Interval]:
        return [(self.start, self.end)]


@dataclass(frozen=True)
class RecurringBlock:
    start: datetime
    end: datetime
    pattern: RecurrencePattern
    instances: List[Interval] = field(default_factory=list)

    @property
    def first(self) -> Interval:
        return self.instances[0]


Block = Union[SingleBlock, RecurringBlock]


def parse_pattern(pattern: Union[RecurrencePattern, Dict[str, Any]]) -> RecurrencePattern:
    """Coerce a raw pattern into a validated ``RecurrencePattern``."""
    if isinstance(pattern, RecurrencePattern):
        return pattern
    try:
        return RecurrencePattern.model_validate(pattern)
    except ValidationError as e:
        raise ValidationException(
            "Invalid recurrence pattern",
            details={"errors": [err["msg"] for err in e.errors()]},
        )


def build_block(
    start: datetime,
    end: datetime,
    pattern: Optional[Union[RecurrencePattern, Dict[str, Any]]] = None,
    horizon_days: Optional[int] = None,
    max_occurrences: Optional[int] = None,
) -> Block:
    """
    Build the block described by a create request.

    A recurring series is expanded in the wall-clock zone of ``start`` so
    "every Monday at 09:00" stays on Monday at 09:00 local time; each
    instance is converted to UTC only once it is placed.

    Raises:
        ValidationException: If the interval is empty or inverted, the
            pattern is malformed, or the pattern yields no occurrence.
    """
    if start is None or end is None or ensure_utc(end) <= ensure_utc(start):
        raise ValidationException("End time must be after start time")

    if pattern is None:
        return SingleBlock(start=ensure_utc(start), end=ensure_utc(end))

    if horizon_days is None:
        horizon_days = settings.recurrence_horizon_days
    if max_occurrences is None:
        max_occurrences = settings.recurrence_max_occurrences

    parsed = parse_pattern(pattern)
    local_start = _as_local(start)
    local_end = _as_local(end).astimezone(local_start.tzinfo)
    instances = list(
        expand(
            local_start,
            local_end,
            parsed,
            horizon_days=horizon_days,
            max_occurrences=max_occurrences,
        )
    )
    if not instances:
        raise ValidationException("Recurrence pattern produces no occurrences")

    logger.debug(f"Expanded {parsed.frequency} pattern into {len(instances)} occurrences")
    return RecurringBlock(
        start=ensure_utc(start), end=ensure_utc(end), pattern=parsed, instances=instances
    )


def _as_local(value: datetime) -> datetime:
    # Naive input is UTC wall-clock
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def expand(
    start: datetime,
    end: datetime,
    pattern: RecurrencePattern,
    horizon_days: int,
    max_occurrences: int,
) -> Iterator[Interval]:
    """
    Yield occurrence intervals in chronological order, as UTC pairs.

    ``start`` and ``end`` share a tzinfo; days, weeks and months are stepped
    in that zone's wall-clock time and ``end_date`` is a local date.
    """
    duration = end - start
    horizon = start + timedelta(days=horizon_days)
    limit = max_occurrences
    if pattern.occurrences is not None:
        limit = min(limit, pattern.occurrences)

    count = 0
    for occurrence_start in _candidate_starts(start, pattern):
        if occurrence_start >= horizon:
            return
        if pattern.end_date is not None and occurrence_start.date() > pattern.end_date:
            return
        yield ensure_utc(occurrence_start), ensure_utc(occurrence_start + duration)
        count += 1
        if count >= limit:
            return


def _candidate_starts(start: datetime, pattern: RecurrencePattern) -> Iterator[datetime]:
    frequency = RecurrenceFrequency(pattern.frequency)
    interval = pattern.interval

    if frequency == RecurrenceFrequency.DAILY:
        step = 0
        while True:
            yield start + timedelta(days=step)
            step += interval

    elif frequency == RecurrenceFrequency.WEEKLY:
        days = pattern.days_of_week or [start.weekday()]
        week_start = start - timedelta(days=start.weekday())
        week = 0
        while True:
            for day in days:
                candidate = week_start + timedelta(weeks=week, days=day)
                if candidate >= start:
                    yield candidate
            week += interval

    else:
        month_offset = 0
        while True:
            month_index = start.month - 1 + month_offset
            year = start.year + month_index // 12
            month = month_index % 12 + 1
            if start.day <= monthrange(year, month)[1]:
                yield start.replace(year=year, month=month)
            month_offset += interval
