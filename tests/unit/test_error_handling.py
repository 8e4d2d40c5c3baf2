"""Unit tests for capture error handling."""

import asyncio
import logging

import pytest

from dlwatch.datalayer.error_handling import (
    CaptureComponent,
    CaptureErrorHandler,
    ErrorSeverity,
    LogChannelUnavailable,
    graceful_degradation,
)


class TestCaptureErrorHandler:
    """Tests for CaptureErrorHandler class."""

    def test_handle_error_records_and_counts(self, error_handler):
        record = error_handler.handle_error(
            ValueError("bad line"),
            CaptureComponent.CLASSIFICATION,
            "console log classification",
            ErrorSeverity.LOW,
        )

        assert record.message == "bad line"
        assert record.exception_type == "ValueError"
        summary = error_handler.get_error_summary()
        assert summary["total_errors"] == 1
        assert summary["by_component"] == {"classification": 1}
        assert summary["error_counts"] == {"classification:ValueError": 1}

    def test_history_is_bounded(self):
        handler = CaptureErrorHandler(max_error_history=3)
        for i in range(5):
            handler.handle_error(RuntimeError(str(i)), CaptureComponent.LOG_READ, "read")

        assert len(handler.error_history) == 3
        assert handler.error_history[0].message == "2"
        assert handler.error_counts["log_read:RuntimeError"] == 5

    def test_severity_sets_log_level(self, error_handler, caplog):
        with caplog.at_level(logging.DEBUG, logger="dlwatch.datalayer.error_handling"):
            error_handler.handle_error(RuntimeError("x"), CaptureComponent.INJECTION, "inject", ErrorSeverity.HIGH)
            error_handler.handle_error(RuntimeError("y"), CaptureComponent.LOG_READ, "read", ErrorSeverity.MEDIUM)
            error_handler.handle_error(RuntimeError("z"), CaptureComponent.CLASSIFICATION, "classify", ErrorSeverity.LOW)

        levels = [r.levelno for r in caplog.records]
        assert levels == [logging.ERROR, logging.WARNING, logging.DEBUG]

    def test_errors_for_and_clear(self, error_handler):
        error_handler.handle_error(RuntimeError("a"), CaptureComponent.SNAPSHOT, "snapshot")
        error_handler.handle_error(RuntimeError("b"), CaptureComponent.LOG_READ, "read")

        assert len(error_handler.errors_for(CaptureComponent.SNAPSHOT)) == 1

        error_handler.clear()
        assert error_handler.get_error_summary()["total_errors"] == 0

    def test_record_to_dict(self, error_handler):
        record = error_handler.handle_error(
            LogChannelUnavailable("performance"), CaptureComponent.LOG_READ, "performance log read"
        )

        data = record.to_dict()
        assert data["component"] == "log_read"
        assert data["severity"] == "medium"
        assert data["exception_type"] == "LogChannelUnavailable"
        assert "performance" in data["message"]


class TestGracefulDegradation:
    """Tests for the degradation context manager."""

    def test_swallows_and_records(self, error_handler):
        with error_handler.degrade(CaptureComponent.LOG_READ, "browser log read") as outcome:
            raise RuntimeError("buffer gone")

        assert outcome.error_occurred is True
        assert isinstance(outcome.exception, RuntimeError)
        assert outcome.record.component == CaptureComponent.LOG_READ

    def test_no_error(self, error_handler):
        with error_handler.degrade(CaptureComponent.LOG_READ, "browser log read") as outcome:
            value = 1

        assert value == 1
        assert outcome.error_occurred is False
        assert error_handler.get_error_summary()["total_errors"] == 0

    def test_unexpected_exception_propagates(self, error_handler):
        with pytest.raises(KeyError):
            with error_handler.degrade(
                CaptureComponent.LOG_READ,
                "browser log read",
                expected_exceptions=(ValueError,),
            ):
                raise KeyError("x")

    def test_cancellation_propagates(self, error_handler):
        with pytest.raises(asyncio.CancelledError):
            with error_handler.degrade(CaptureComponent.LOG_READ, "browser log read"):
                raise asyncio.CancelledError()

        assert error_handler.get_error_summary()["total_errors"] == 0

    def test_without_handler_logs_only(self, caplog):
        with caplog.at_level(logging.WARNING, logger="dlwatch.datalayer.error_handling"):
            with graceful_degradation(operation_name="standalone") as outcome:
                raise ValueError("nope")

        assert outcome.error_occurred is True
        assert outcome.record is None
        assert "standalone" in caplog.text
