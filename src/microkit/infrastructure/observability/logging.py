"""
Structured Logging System

Provides structured logging with correlation IDs, pluggable formatters and
handlers, and a factory that builds a service logger from the values held in
a ConfigurationStore.
"""

import json
import sys
import threading
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, TextIO, Union

from ..exceptions import ConfigurationError
from .tracing import get_span_id, get_trace_id

if TYPE_CHECKING:
    from ...framework.configuration.store import ConfigurationStore

correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)


class LogLevel(Enum):
    """Log levels understood by the service logger"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def severity(self) -> int:
        return _LEVEL_ORDER[self]


_LEVEL_ORDER = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARNING: 2,
    LogLevel.ERROR: 3,
    LogLevel.CRITICAL: 4,
}

# Level names accepted in the `log_level` configuration key
_LEVEL_ALIASES = {
    "": LogLevel.INFO,
    "debug": LogLevel.DEBUG,
    "info": LogLevel.INFO,
    "warn": LogLevel.WARNING,
    "warning": LogLevel.WARNING,
    "error": LogLevel.ERROR,
    "dpanic": LogLevel.CRITICAL,
    "panic": LogLevel.CRITICAL,
    "fatal": LogLevel.CRITICAL,
    "critical": LogLevel.CRITICAL,
}


def parse_log_level(value: str) -> LogLevel:
    """
    Parse a textual log level.

    An empty string means INFO. Unknown names raise ConfigurationError.
    """
    level = _LEVEL_ALIASES.get(value.strip().lower())
    if level is None:
        raise ConfigurationError(
            f"Unrecognized log level: {value!r}",
            context={"log_level": value, "accepted": sorted(k for k in _LEVEL_ALIASES if k)}
        )
    return level


class LogFormatter(ABC):
    """Abstract base class for log formatters"""

    @abstractmethod
    def format(self, record: Dict[str, Any]) -> str:
        """Format a log record into a string"""
        pass


class JSONLogFormatter(LogFormatter):
    """JSON formatter for structured logging"""

    def format(self, record: Dict[str, Any]) -> str:
        return json.dumps(record, default=str, ensure_ascii=False)


class ConsoleLogFormatter(LogFormatter):
    """Tab separated, human readable formatter for development"""

    def format(self, record: Dict[str, Any]) -> str:
        parts = [
            record.get('timestamp', ''),
            record.get('level', ''),
            record.get('logger', ''),
            record.get('message', ''),
        ]
        line = "\t".join(parts)

        fields = {
            k: v for k, v in record.items()
            if k not in ('timestamp', 'level', 'logger', 'message', 'extra')
        }
        fields.update(record.get('extra', {}))
        if fields:
            line += "\t" + json.dumps(fields, default=str, ensure_ascii=False)

        return line


class LogHandler(ABC):
    """Abstract base class for log handlers"""

    def __init__(self, formatter: LogFormatter):
        self.formatter = formatter

    @abstractmethod
    def emit(self, record: Dict[str, Any]) -> None:
        """Emit a log record"""
        pass


class ConsoleLogHandler(LogHandler):
    """Console log handler, stderr by default"""

    def __init__(self, formatter: LogFormatter, stream: Optional[TextIO] = None):
        super().__init__(formatter)
        self.stream = stream or sys.stderr
        self._lock = threading.Lock()

    def emit(self, record: Dict[str, Any]) -> None:
        formatted_message = self.formatter.format(record)
        with self._lock:
            self.stream.write(formatted_message + '\n')
            self.stream.flush()


class FileLogHandler(LogHandler):
    """File log handler that appends to a file"""

    def __init__(self, formatter: LogFormatter, file_path: Union[str, Path]):
        super().__init__(formatter)
        self.file_path = Path(file_path)
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def emit(self, record: Dict[str, Any]) -> None:
        formatted_message = self.formatter.format(record)
        with self._lock:
            with open(self.file_path, 'a', encoding='utf-8') as f:
                f.write(formatted_message + '\n')


class ServiceLogger:
    """
    Structured logger for a service.

    Features:
    - Structured records (JSON or console output)
    - Correlation ID tracking across calls
    - Trace and span IDs from the active tracing context
    - Static fields (service name, environment) stamped on every record
    - Level changes at runtime, e.g. after a configuration reload
    """

    def __init__(
        self,
        name: str,
        level: LogLevel = LogLevel.INFO,
        static_fields: Optional[Dict[str, Any]] = None
    ):
        self.name = name
        self.level = level
        self.static_fields = dict(static_fields or {})
        self.handlers: List[LogHandler] = []

    def add_handler(self, handler: LogHandler) -> None:
        self.handlers.append(handler)

    def remove_handler(self, handler: LogHandler) -> None:
        if handler in self.handlers:
            self.handlers.remove(handler)

    def set_level(self, level: LogLevel) -> None:
        self.level = level

    def is_enabled_for(self, level: LogLevel) -> bool:
        return level.severity >= self.level.severity

    def _create_log_record(self, level: LogLevel, message: str, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        record = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': level.value,
            'logger': self.name,
            'message': message,
            'correlation_id': correlation_id_var.get(),
            'trace_id': get_trace_id(),
            'span_id': get_span_id(),
        }
        record.update(self.static_fields)

        if extra:
            record['extra'] = extra

        return {k: v for k, v in record.items() if v is not None}

    def _log(self, level: LogLevel, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        if not self.is_enabled_for(level):
            return

        record = self._create_log_record(level, message, extra)

        for handler in self.handlers:
            try:
                handler.emit(record)
            except Exception as e:
                sys.stderr.write(f"Logging handler failed: {e}\n")

    def debug(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        self._log(LogLevel.DEBUG, message, extra)

    def info(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        self._log(LogLevel.INFO, message, extra)

    def warning(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        self._log(LogLevel.WARNING, message, extra)

    def error(self, message: str, extra: Optional[Dict[str, Any]] = None, exc_info: Optional[BaseException] = None) -> None:
        """Log error message with optional exception info"""
        self._log(LogLevel.ERROR, message, _with_exception(extra, exc_info))

    def critical(self, message: str, extra: Optional[Dict[str, Any]] = None, exc_info: Optional[BaseException] = None) -> None:
        """Log critical message with optional exception info"""
        self._log(LogLevel.CRITICAL, message, _with_exception(extra, exc_info))

    @contextmanager
    def correlation_context(self, correlation_id: Optional[str] = None):
        """Context manager for correlation ID tracking"""
        if correlation_id is None:
            correlation_id = str(uuid.uuid4())

        token = correlation_id_var.set(correlation_id)
        try:
            yield correlation_id
        finally:
            correlation_id_var.reset(token)


def _with_exception(extra: Optional[Dict[str, Any]], exc_info: Optional[BaseException]) -> Optional[Dict[str, Any]]:
    if not exc_info:
        return extra
    extra = dict(extra or {})
    extra['exception'] = {
        'type': type(exc_info).__name__,
        'message': str(exc_info),
        'module': type(exc_info).__module__
    }
    return extra


def new_logger(config: "ConfigurationStore", name: Optional[str] = None) -> ServiceLogger:
    """
    Build a service logger from configuration.

    Keys read: ``log_level``, ``log_format`` (``console`` or ``json``),
    ``log_file`` (optional extra destination) and ``service_name``.

    Raises:
        ConfigurationError: if the log level or format is not recognized
    """
    level = parse_log_level(config.get_string("log_level"))

    log_format = config.get_string("log_format").strip().lower() or "console"
    if log_format == "json":
        formatter: LogFormatter = JSONLogFormatter()
    elif log_format == "console":
        formatter = ConsoleLogFormatter()
    else:
        raise ConfigurationError(
            f"Unrecognized log format: {log_format!r}",
            context={"log_format": log_format, "accepted": ["console", "json"]}
        )

    service_name = config.get_string("service_name")
    static_fields = {"service": service_name} if service_name else {}

    logger = ServiceLogger(name or service_name or "microkit", level, static_fields)
    logger.add_handler(ConsoleLogHandler(formatter))

    log_file = config.get_string("log_file")
    if log_file:
        logger.add_handler(FileLogHandler(formatter, log_file))

    return logger


def follow_log_level(logger: ServiceLogger, config: "ConfigurationStore") -> Callable[[], None]:
    """
    Keep the logger's level in sync with ``log_level`` across configuration reloads.

    Invalid levels delivered by a reload are reported and the current level is
    kept. Returns the registered callback so it can be removed again.
    """
    def on_reload() -> None:
        value = config.get_string("log_level")
        try:
            level = parse_log_level(value)
        except ConfigurationError:
            logger.warning("Ignoring invalid log level from configuration reload", {"log_level": value})
            return
        if level != logger.level:
            logger.info("Log level changed", {"from": logger.level.value, "to": level.value})
            logger.set_level(level)

    config.add_reload_callback(on_reload)
    return on_reload


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID from context"""
    return correlation_id_var.get()
