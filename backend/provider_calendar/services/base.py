# backend/provider_calendar/services/base.py
"""
Base Service for the provider calendar core.

Every calendar service inherits:
- ``transaction()``: commit on success, rollback on any error, database
  errors surfaced as ServiceException
- ``measure_operation``: timing, in-process counters and Prometheus metrics
  for each public operation
- A logger named after the concrete service class
"""

from contextlib import contextmanager
from functools import wraps
import logging
import time
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import ServiceException
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

SLOW_OPERATION_SECONDS = 1.0


def _empty_stats() -> Dict[str, Any]:
    return {
        "count": 0,
        "success_count": 0,
        "failure_count": 0,
        "total_time": 0.0,
        "min_time": float("inf"),
        "max_time": 0.0,
    }


class BaseService:
    """
    Base class for calendar services.

    Services own the unit of work: repositories flush, services commit.
    """

    # {service class name: {operation: stats}}
    _class_metrics: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def __init__(self, db: Session):
        self.db = db
        self.logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Unit of work around ``self.db``.

        Usage:
            with self.transaction():
                self.availability_repository.create(...)
        """
        try:
            yield self.db
        except SQLAlchemyError as e:
            self.db.rollback()
            self.logger.error(f"Transaction rolled back after database error: {str(e)}")
            raise ServiceException(f"Database operation failed: {str(e)}")
        except Exception as e:
            self.db.rollback()
            self.logger.debug(f"Transaction rolled back: {type(e).__name__}: {e}")
            raise

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            self.logger.error(f"Commit failed: {str(e)}")
            raise ServiceException(f"Database operation failed: {str(e)}")

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Decorator timing a service operation.

        Usage:
            @BaseService.measure_operation("create_availability")
            def create_availability(self, ...):
                ...
        """

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self: "BaseService", *args: Any, **kwargs: Any) -> Any:
                started = time.time()
                error_type: Optional[str] = None
                try:
                    return func(self, *args, **kwargs)
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    self._observe(operation_name, time.time() - started, error_type)

            return cast(F, wrapper)

        return decorator

    def _observe(self, operation: str, elapsed: float, error_type: Optional[str]) -> None:
        success = error_type is None
        self._record_metric(operation, elapsed, success)

        if elapsed > SLOW_OPERATION_SECONDS:
            self.logger.warning(f"Slow operation detected: {operation} took {elapsed:.2f}s")

        try:
            prometheus_metrics.record_service_operation(
                service=self.__class__.__name__,
                operation=operation,
                duration=elapsed,
                status="success" if success else "error",
                error_type=error_type,
            )
        except Exception:
            # Metrics collection must never break the operation
            logger.debug("Failed to record metrics for %s", operation, exc_info=True)

    def _record_metric(self, operation: str, elapsed: float, success: bool) -> None:
        service_metrics = BaseService._class_metrics.setdefault(self.__class__.__name__, {})
        stats = service_metrics.setdefault(operation, _empty_stats())

        stats["count"] += 1
        stats["success_count" if success else "failure_count"] += 1
        stats["total_time"] += elapsed
        stats["min_time"] = min(stats["min_time"], elapsed)
        stats["max_time"] = max(stats["max_time"], elapsed)

    def get_metrics(self) -> Dict[str, Any]:
        """
        Per-operation timing and success rates for this service class.

        Returns:
            Mapping of operation name to its aggregated stats
        """
        result: Dict[str, Any] = {}
        for operation, stats in BaseService._class_metrics.get(self.__class__.__name__, {}).items():
            count = stats["count"]
            if not count:
                continue
            result[operation] = {
                **stats,
                "avg_time": stats["total_time"] / count,
                "success_rate": stats["success_count"] / count,
            }
        return result

    def reset_metrics(self) -> None:
        BaseService._class_metrics.pop(self.__class__.__name__, None)
        self.logger.info(f"Metrics reset for {self.__class__.__name__}")
