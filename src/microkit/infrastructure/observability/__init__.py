"""
Observability - structured logging and distributed tracing.
"""

from .logging import (
    ServiceLogger, LogLevel, LogFormatter, LogHandler, JSONLogFormatter,
    ConsoleLogFormatter, ConsoleLogHandler, FileLogHandler,
    new_logger, follow_log_level, parse_log_level, get_correlation_id
)
from .tracing import (
    Tracer, Span, SpanKind, SpanStatus, TraceContext, SpanExporter,
    LoggingSpanExporter, ZipkinSpanExporter, trace_method,
    get_tracer, set_tracer, init_tracer, get_trace_id, get_span_id
)

__all__ = [
    # Logging
    "ServiceLogger",
    "LogLevel",
    "LogFormatter",
    "LogHandler",
    "JSONLogFormatter",
    "ConsoleLogFormatter",
    "ConsoleLogHandler",
    "FileLogHandler",
    "new_logger",
    "follow_log_level",
    "parse_log_level",
    "get_correlation_id",

    # Tracing
    "Tracer",
    "Span",
    "SpanKind",
    "SpanStatus",
    "TraceContext",
    "SpanExporter",
    "LoggingSpanExporter",
    "ZipkinSpanExporter",
    "trace_method",
    "get_tracer",
    "set_tracer",
    "init_tracer",
    "get_trace_id",
    "get_span_id",
]
