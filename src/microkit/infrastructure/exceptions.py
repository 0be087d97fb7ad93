"""
Structured Exception Hierarchy

Every toolkit error carries an error code, context data and a correlation ID
so that failures surfacing from the config watcher or an adapter can be logged
and traced uniformly.
"""

from typing import Dict, Any, Optional
import uuid
from datetime import datetime, timezone


class MicrokitException(Exception):
    """
    Base exception class for all microkit-specific exceptions.

    Provides structured error information including error codes,
    context data, and correlation IDs for tracing.
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        correlation_id: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.cause = cause
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
            "correlation_id": self.correlation_id,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None
        }


class ConfigurationError(MicrokitException):
    """Raised when configuration-related errors occur."""

    default_error_code = "CONFIG_ERROR"

    def __init__(
        self,
        message: str,
        config_path: Optional[str] = None,
        error_code: Optional[str] = None,
        **kwargs
    ):
        context = kwargs.pop('context', {})
        if config_path:
            context['config_path'] = config_path

        super().__init__(
            message=message,
            error_code=error_code or self.default_error_code,
            context=context,
            **kwargs
        )
        self.config_path = config_path


class NotFoundError(ConfigurationError):
    """Raised when no configuration document exists at the requested path."""

    default_error_code = "CONFIG_NOT_FOUND"


class TransportError(ConfigurationError):
    """Raised on network or authentication failures talking to the document store."""

    default_error_code = "CONFIG_TRANSPORT_ERROR"


class SubscriptionClosedError(TransportError):
    """Raised when reading from a subscription that has been stopped or has died."""

    default_error_code = "SUBSCRIPTION_CLOSED"


class DecodeError(ConfigurationError):
    """Raised when a remote payload cannot be interpreted as a configuration document."""

    default_error_code = "CONFIG_DECODE_ERROR"


class StorageError(MicrokitException):
    """Raised when object storage operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
        **kwargs
    ):
        context = kwargs.pop('context', {})
        if operation:
            context['operation'] = operation
        if bucket:
            context['bucket'] = bucket
        if key:
            context['key'] = key

        super().__init__(
            message=message,
            error_code="STORAGE_ERROR",
            context=context,
            **kwargs
        )


class DatabaseError(MicrokitException):
    """Raised when a database connection cannot be established."""

    def __init__(
        self,
        message: str,
        host: Optional[str] = None,
        database: Optional[str] = None,
        **kwargs
    ):
        context = kwargs.pop('context', {})
        if host:
            context['host'] = host
        if database:
            context['database'] = database

        super().__init__(
            message=message,
            error_code="DATABASE_ERROR",
            context=context,
            **kwargs
        )


class ServerError(MicrokitException):
    """Raised when an HTTP or RPC server cannot be bootstrapped."""

    def __init__(
        self,
        message: str,
        address: Optional[str] = None,
        protocol: Optional[str] = None,
        **kwargs
    ):
        context = kwargs.pop('context', {})
        if address:
            context['address'] = address
        if protocol:
            context['protocol'] = protocol

        super().__init__(
            message=message,
            error_code="SERVER_ERROR",
            context=context,
            **kwargs
        )
