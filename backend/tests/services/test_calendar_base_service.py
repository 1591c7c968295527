from itertools import chain, repeat
from unittest.mock import Mock, patch

import pytest
from sqlalchemy.exc import OperationalError

from provider_calendar.core.exceptions import ServiceException, ValidationException
from provider_calendar.services import base as base_module
from provider_calendar.services.base import BaseService


class _SampleService(BaseService):
    @BaseService.measure_operation("sample_operation")
    def sample_operation(self, fail: bool = False) -> str:
        if fail:
            raise ValidationException("bad input")
        return "ok"


class TestTransaction:
    def test_commits_on_success(self) -> None:
        db = Mock()
        service = BaseService(db)

        with service.transaction():
            pass

        db.commit.assert_called_once()
        db.rollback.assert_not_called()

    def test_sqlalchemy_error_becomes_service_exception(self) -> None:
        db = Mock()
        service = BaseService(db)

        with pytest.raises(ServiceException):
            with service.transaction():
                raise OperationalError("SELECT 1", {}, Exception("connection lost"))

        db.rollback.assert_called_once()
        db.commit.assert_not_called()

    def test_domain_errors_pass_through_after_rollback(self) -> None:
        db = Mock()
        service = BaseService(db)

        with pytest.raises(ValidationException):
            with service.transaction():
                raise ValidationException("nope")

        db.rollback.assert_called_once()


class TestMeasureOperation:
    def test_records_success_and_failure(self) -> None:
        service = _SampleService(Mock())
        service.reset_metrics()

        assert service.sample_operation() == "ok"
        with pytest.raises(ValidationException):
            service.sample_operation(fail=True)

        metrics = service.get_metrics()["sample_operation"]
        assert metrics["count"] == 2
        assert metrics["success_count"] == 1
        assert metrics["failure_count"] == 1
        assert metrics["success_rate"] == 0.5

    def test_feeds_prometheus(self) -> None:
        service = _SampleService(Mock())

        with patch.object(base_module.prometheus_metrics, "record_service_operation") as record:
            service.sample_operation(fail=False)

        kwargs = record.call_args.kwargs
        assert kwargs["service"] == "_SampleService"
        assert kwargs["operation"] == "sample_operation"
        assert kwargs["status"] == "success"

    def test_metrics_failure_never_breaks_the_operation(self) -> None:
        service = _SampleService(Mock())

        with patch.object(
            base_module.prometheus_metrics,
            "record_service_operation",
            side_effect=RuntimeError("registry broken"),
        ):
            assert service.sample_operation() == "ok"

    def test_logs_slow_operations(self) -> None:
        service = _SampleService(Mock())

        with patch("provider_calendar.services.base.time.time", side_effect=chain([0.0], repeat(2.0))):
            with patch.object(service.logger, "warning") as warning:
                service.sample_operation()

        warning.assert_called_once()
