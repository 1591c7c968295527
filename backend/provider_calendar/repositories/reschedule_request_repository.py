# backend/provider_calendar/repositories/reschedule_request_repository.py
"""
Reschedule Request Repository.

Plain CRUD plus the lookups used by the negotiation workflow. Status changes
out of ``pending`` go through ``transition_status``, a single conditional
UPDATE, so two concurrent responders can never both win.
"""

from datetime import datetime
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException, ValidationException
from ..core.timezone_utils import ensure_utc
from ..models.reschedule_request import RescheduleRequest, RescheduleStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class RescheduleRequestRepository(BaseRepository[RescheduleRequest]):
    """Repository for reschedule requests."""

    def __init__(self, db: Session):
        super().__init__(db, RescheduleRequest)

    def find_pending_for(self, user_id: str) -> List[RescheduleRequest]:
        """Pending requests awaiting ``user_id``'s response, newest first."""
        return self._execute_query(
            self._build_query()
            .filter(
                RescheduleRequest.requested_for == user_id,
                RescheduleRequest.status == RescheduleStatus.PENDING.value,
            )
            .order_by(RescheduleRequest.created_at.desc(), RescheduleRequest.id.desc())
        )

    def find_by_status(self, status: str) -> List[RescheduleRequest]:
        return self._execute_query(
            self._build_query()
            .filter(RescheduleRequest.status == status)
            .order_by(RescheduleRequest.created_at.desc(), RescheduleRequest.id.desc())
        )

    def find_for_user(self, user_id: str, status: Optional[str] = None) -> List[RescheduleRequest]:
        """Requests where ``user_id`` is either party, newest first."""
        query = self._build_query().filter(
            or_(
                RescheduleRequest.requested_by == user_id,
                RescheduleRequest.requested_for == user_id,
            )
        )
        if status:
            query = query.filter(RescheduleRequest.status == status)
        return self._execute_query(
            query.order_by(RescheduleRequest.created_at.desc(), RescheduleRequest.id.desc())
        )

    def find_by_schedule(
        self, job_schedule_id: str, status: Optional[str] = None
    ) -> List[RescheduleRequest]:
        query = self._build_query().filter(RescheduleRequest.job_schedule_id == job_schedule_id)
        if status:
            query = query.filter(RescheduleRequest.status == status)
        return self._execute_query(query.order_by(RescheduleRequest.created_at))

    def transition_status(self, request_id: str, new_status: str, **fields: Any) -> bool:
        """
        Move a request out of ``pending``.

        Returns:
            True if this call performed the transition, False if the request
            was missing or no longer pending.
        """
        values: Dict[str, Any] = {"status": new_status}
        for key, value in fields.items():
            values[key] = ensure_utc(value) if isinstance(value, datetime) else value
        try:
            updated = (
                self.db.query(RescheduleRequest)
                .filter(
                    RescheduleRequest.id == request_id,
                    RescheduleRequest.status == RescheduleStatus.PENDING.value,
                )
                .update(values, synchronize_session="fetch")
            )
            self.db.flush()
            if updated != 1:
                return False
            # Bulk update only partly syncs the loaded instance; reload it
            instance = self.db.get(RescheduleRequest, request_id)
            if instance is not None:
                self.db.refresh(instance)
            return True
        except SQLAlchemyError as e:
            self.logger.error(f"Error transitioning reschedule request {request_id}: {str(e)}")
            raise RepositoryException(f"Failed to update reschedule request: {str(e)}")

    def _validate(self, values: Dict[str, Any], existing: Optional[RescheduleRequest]) -> None:
        for key in (
            "original_start_time",
            "original_end_time",
            "requested_start_time",
            "requested_end_time",
        ):
            if key in values:
                values[key] = ensure_utc(values[key])

        start = values.get(
            "requested_start_time", existing.requested_start_time if existing else None
        )
        end = values.get("requested_end_time", existing.requested_end_time if existing else None)
        if start is None or end is None:
            raise ValidationException("requested_start_time and requested_end_time are required")
        if end <= start:
            raise ValidationException("Requested end time must be after requested start time")
