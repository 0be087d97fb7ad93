"""
Infrastructure Layer - cross-cutting technical services

Structured exceptions, resilience patterns and observability (logging,
tracing) shared by the configuration framework and the adapters.
"""

from .exceptions import (
    MicrokitException, ConfigurationError, NotFoundError, TransportError,
    SubscriptionClosedError, DecodeError, StorageError, DatabaseError, ServerError
)
from .resilience import RetryPolicy, RetryConfig

__all__ = [
    "MicrokitException",
    "ConfigurationError",
    "NotFoundError",
    "TransportError",
    "SubscriptionClosedError",
    "DecodeError",
    "StorageError",
    "DatabaseError",
    "ServerError",
    "RetryPolicy",
    "RetryConfig",
]
