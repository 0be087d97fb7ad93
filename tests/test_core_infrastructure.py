"""
Tests for the exception hierarchy and the retry policy.
"""

import threading
import time

import pytest

from microkit.infrastructure import RetryConfig, RetryPolicy
from microkit.infrastructure.exceptions import (
    ConfigurationError, DatabaseError, DecodeError, MicrokitException, NotFoundError,
    ServerError, StorageError, SubscriptionClosedError, TransportError
)


class TestExceptions:
    """Test structured exceptions."""

    def test_base_exception(self):
        cause = ValueError("root cause")
        error = MicrokitException(
            "Something failed",
            error_code="TEST_ERROR",
            context={"key": "value"},
            cause=cause,
            correlation_id="abc-123"
        )

        assert str(error) == "Something failed"
        data = error.to_dict()
        assert data["error_type"] == "MicrokitException"
        assert data["error_code"] == "TEST_ERROR"
        assert data["context"] == {"key": "value"}
        assert data["correlation_id"] == "abc-123"
        assert data["cause"] == "root cause"
        assert data["timestamp"]

    def test_correlation_id_generated(self):
        assert MicrokitException("x", error_code="X").correlation_id

    @pytest.mark.parametrize("error_class,code", [
        (ConfigurationError, "CONFIG_ERROR"),
        (NotFoundError, "CONFIG_NOT_FOUND"),
        (TransportError, "CONFIG_TRANSPORT_ERROR"),
        (SubscriptionClosedError, "SUBSCRIPTION_CLOSED"),
        (DecodeError, "CONFIG_DECODE_ERROR"),
    ])
    def test_configuration_error_codes(self, error_class, code):
        error = error_class("failed", config_path="billing/staging")
        assert error.error_code == code
        assert error.context["config_path"] == "billing/staging"
        assert isinstance(error, ConfigurationError)

    def test_subscription_closed_is_transport_error(self):
        assert issubclass(SubscriptionClosedError, TransportError)

    def test_adapter_errors_carry_context(self):
        storage = StorageError("upload failed", operation="upload_object", bucket="media", key="a.txt")
        assert storage.error_code == "STORAGE_ERROR"
        assert storage.context == {"operation": "upload_object", "bucket": "media", "key": "a.txt"}

        database = DatabaseError("unreachable", host="db", database="billing")
        assert database.error_code == "DATABASE_ERROR"
        assert database.context == {"host": "db", "database": "billing"}

        server = ServerError("bind failed", address="0.0.0.0:50051", protocol="grpc")
        assert server.error_code == "SERVER_ERROR"
        assert server.context["protocol"] == "grpc"


class TestRetryPolicy:
    """Test retry with exponential backoff."""

    def test_success_after_failures(self):
        calls = []

        def flaky_operation():
            calls.append(True)
            if len(calls) < 3:
                raise TransportError("unavailable")
            return "ok"

        policy = RetryPolicy(RetryConfig(max_attempts=3, base_delay=0.001, jitter=False))
        assert policy.execute(flaky_operation, "flaky") == "ok"
        assert len(calls) == 3

    def test_exhaustion(self):
        policy = RetryPolicy(RetryConfig(max_attempts=2, base_delay=0.001))

        def always_fails():
            raise TransportError("unavailable")

        with pytest.raises(MicrokitException) as exc_info:
            policy.execute(always_fails, "doomed")
        assert exc_info.value.error_code == "RETRY_EXHAUSTED"
        assert isinstance(exc_info.value.cause, TransportError)

    def test_non_retryable_raised_immediately(self):
        calls = []

        def fails():
            calls.append(True)
            raise DecodeError("bad payload")

        policy = RetryPolicy(RetryConfig(max_attempts=5, base_delay=0.001, retryable_exceptions=(TransportError,)))
        with pytest.raises(DecodeError):
            policy.execute(fails)
        assert len(calls) == 1

    def test_stop_event_aborts_backoff(self):
        stop = threading.Event()
        stop.set()
        policy = RetryPolicy(RetryConfig(max_attempts=3, base_delay=10.0), stop_event=stop)

        def fails():
            raise TransportError("unavailable")

        started = time.monotonic()
        with pytest.raises(MicrokitException) as exc_info:
            policy.execute(fails)
        assert exc_info.value.error_code == "RETRY_ABORTED"
        assert time.monotonic() - started < 5.0

    def test_delay_is_capped(self):
        policy = RetryPolicy(RetryConfig(base_delay=1.0, max_delay=4.0, jitter=False))
        assert policy._calculate_delay(1) == 1.0
        assert policy._calculate_delay(2) == 2.0
        assert policy._calculate_delay(10) == 4.0
