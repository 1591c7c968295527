# backend/provider_calendar/core/exceptions.py
"""
Domain-specific exceptions for the provider calendar core.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert to the HTTPException the request layer returns."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when input fails validation (bad interval, missing field)."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ForbiddenException(DomainException):
    """
    Raised by the request layer when an actor fails an ownership check.

    The core never raises this itself; it only exposes the predicates in
    ``provider_calendar.services.permissions``.
    """

    status_code = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class AvailabilityConflictException(ConflictException):
    """Raised when an availability block overlaps an existing available block."""

    def __init__(self, provider_id: str, conflicting_ids: List[str]):
        super().__init__(
            message="Availability conflicts with existing blocks",
            code="AVAILABILITY_CONFLICT",
            details={
                "provider_id": provider_id,
                "conflicting_ids": list(conflicting_ids),
            },
        )


class InvalidStateException(BusinessRuleException):
    """Raised when an entity is not in a state that allows the requested transition."""

    def __init__(
        self,
        entity: str,
        entity_id: str,
        current_status: str,
        action: str,
    ):
        super().__init__(
            message=f"Cannot {action} {entity} {entity_id} in status '{current_status}'",
            code="INVALID_STATE",
            details={
                "entity": entity,
                "entity_id": entity_id,
                "current_status": current_status,
                "action": action,
            },
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
