# backend/provider_calendar/repositories/availability_repository.py
"""
Availability Repository.

Owns CalendarAvailability rows and answers the interval questions the
service needs:

- find_overlapping: available-type blocks intersecting a half-open window
- find_in_range: every block intersecting a window, for calendar listing

Overlap is half-open everywhere: ``a.start < b.end and b.start < a.end``,
so blocks that only touch at an endpoint never conflict.
"""

from datetime import datetime
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException, ValidationException
from ..core.timezone_utils import ensure_utc
from ..models.availability import AVAILABILITY_TYPES, AvailabilityType, CalendarAvailability
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class AvailabilityRepository(BaseRepository[CalendarAvailability]):
    """Repository for calendar availability blocks."""

    def __init__(self, db: Session):
        super().__init__(db, CalendarAvailability)

    def find_overlapping(
        self,
        provider_id: str,
        start: datetime,
        end: datetime,
        exclude_id: Optional[str] = None,
    ) -> List[CalendarAvailability]:
        """
        Available-type blocks for the provider that intersect ``[start, end)``.

        Args:
            provider_id: Owner of the blocks
            start: Window start
            end: Window end
            exclude_id: Block to leave out (the block being updated)

        Returns:
            Conflicting blocks ordered by start time
        """
        start, end = ensure_utc(start), ensure_utc(end)
        try:
            query = self.db.query(CalendarAvailability).filter(
                CalendarAvailability.provider_id == provider_id,
                CalendarAvailability.type == AvailabilityType.AVAILABLE.value,
                CalendarAvailability.start_time < end,
                CalendarAvailability.end_time > start,
            )
            if exclude_id:
                query = query.filter(CalendarAvailability.id != exclude_id)
            return query.order_by(CalendarAvailability.start_time).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error finding overlapping availability: {str(e)}")
            raise RepositoryException(f"Failed to find overlapping availability: {str(e)}")

    def find_in_range(
        self, provider_id: str, start: datetime, end: datetime
    ) -> List[CalendarAvailability]:
        """All blocks of any type intersecting the window, earliest first."""
        start, end = ensure_utc(start), ensure_utc(end)
        try:
            return (
                self.db.query(CalendarAvailability)
                .filter(
                    CalendarAvailability.provider_id == provider_id,
                    CalendarAvailability.start_time < end,
                    CalendarAvailability.end_time > start,
                )
                .order_by(CalendarAvailability.start_time)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting availability in range: {str(e)}")
            raise RepositoryException(f"Failed to get availability: {str(e)}")

    def find_occurrences(self, parent_id: str) -> List[CalendarAvailability]:
        """Materialized occurrences of a recurring block, earliest first."""
        return self._execute_query(
            self._build_query()
            .filter(CalendarAvailability.recurrence_parent_id == parent_id)
            .order_by(CalendarAvailability.start_time)
        )

    def delete_series(self, block: CalendarAvailability) -> List[str]:
        """
        Delete a block together with any occurrences materialized from it.

        Returns:
            Ids of every deleted row, occurrences first
        """
        occurrences = self.find_occurrences(block.id)
        deleted_ids = [occurrence.id for occurrence in occurrences] + [block.id]
        try:
            for occurrence in occurrences:
                self.db.delete(occurrence)
            self.db.delete(block)
            self.db.flush()
            return deleted_ids
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting availability {block.id}: {str(e)}")
            raise RepositoryException(f"Failed to delete availability: {str(e)}")

    def lock_provider(self, provider_id: str) -> None:
        """
        Serialize conflict-check-then-write for one provider.

        PostgreSQL takes a transaction-scoped advisory lock, released on
        commit or rollback. SQLite already serializes writers.
        """
        if self.dialect_name != "postgresql":
            return
        try:
            self.db.execute(
                text("SELECT pg_advisory_xact_lock(hashtext(:lock_key))"),
                {"lock_key": f"calendar_availability:{provider_id}"},
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error locking availability for provider {provider_id}: {str(e)}")
            raise RepositoryException(f"Failed to lock provider availability: {str(e)}")

    def _validate(self, values: Dict[str, Any], existing: Optional[CalendarAvailability]) -> None:
        """Normalize times to UTC and reject inverted or empty intervals."""
        for key in ("start_time", "end_time"):
            if key in values:
                values[key] = ensure_utc(values[key])

        start = values.get("start_time", existing.start_time if existing else None)
        end = values.get("end_time", existing.end_time if existing else None)
        if start is None or end is None:
            raise ValidationException("start_time and end_time are required")
        if end <= start:
            raise ValidationException(
                "End time must be after start time",
                details={"start_time": start.isoformat(), "end_time": end.isoformat()},
            )

        block_type = values.get("type")
        if isinstance(block_type, AvailabilityType):
            values["type"] = block_type = block_type.value
        if block_type is not None and block_type not in AVAILABILITY_TYPES:
            raise ValidationException(
                f"Unknown availability type '{block_type}'",
                details={"allowed": list(AVAILABILITY_TYPES)},
            )
