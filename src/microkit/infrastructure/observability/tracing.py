"""
Distributed Tracing

Spans with context-variable propagation, W3C trace-context headers for
crossing service boundaries, and exporters that ship finished spans to a
Zipkin-compatible collector (Jaeger accepts the same format).
"""

import asyncio
import functools
import logging
import secrets
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, TypeVar

import httpx

if TYPE_CHECKING:
    from ...framework.configuration.store import ConfigurationStore

logger = logging.getLogger(__name__)

trace_id_var: ContextVar[Optional[str]] = ContextVar('trace_id', default=None)
span_id_var: ContextVar[Optional[str]] = ContextVar('span_id', default=None)
parent_span_id_var: ContextVar[Optional[str]] = ContextVar('parent_span_id', default=None)

F = TypeVar('F', bound=Callable[..., Any])


class SpanKind(Enum):
    """Types of spans in distributed tracing"""
    INTERNAL = "internal"
    SERVER = "server"
    CLIENT = "client"
    PRODUCER = "producer"
    CONSUMER = "consumer"


class SpanStatus(Enum):
    """Status of a span"""
    OK = "ok"
    ERROR = "error"


@dataclass
class SpanEvent:
    """Event within a span"""
    name: str
    timestamp: datetime
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Span:
    """A single unit of work in a distributed trace"""
    trace_id: str
    span_id: str
    parent_span_id: Optional[str]
    operation_name: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_ms: Optional[float] = None
    status: SpanStatus = SpanStatus.OK
    kind: SpanKind = SpanKind.INTERNAL
    tags: Dict[str, Any] = field(default_factory=dict)
    events: List[SpanEvent] = field(default_factory=list)

    def finish(self, status: SpanStatus = SpanStatus.OK) -> None:
        self.end_time = datetime.now(timezone.utc)
        self.status = status
        self.duration_ms = (self.end_time - self.start_time).total_seconds() * 1000

    def add_tag(self, key: str, value: Any) -> None:
        self.tags[key] = value

    def add_event(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> None:
        self.events.append(SpanEvent(
            name=name,
            timestamp=datetime.now(timezone.utc),
            attributes=attributes or {}
        ))

    def set_error(self, error: BaseException) -> None:
        """Mark span as error and add error details"""
        self.status = SpanStatus.ERROR
        self.add_tag("error", True)
        self.add_tag("error.type", type(error).__name__)
        self.add_tag("error.message", str(error))
        self.add_event("exception", {
            "exception.type": type(error).__name__,
            "exception.message": str(error),
        })


@dataclass
class TraceContext:
    """Context for trace propagation across process boundaries"""
    trace_id: str
    span_id: str
    parent_span_id: Optional[str] = None
    sampled: bool = True
    baggage: Dict[str, str] = field(default_factory=dict)

    def to_headers(self) -> Dict[str, str]:
        """Render as W3C ``traceparent`` and ``baggage`` headers"""
        flags = "01" if self.sampled else "00"
        headers = {'traceparent': f"00-{self.trace_id}-{self.span_id}-{flags}"}
        if self.baggage:
            headers['baggage'] = ",".join(f"{k}={v}" for k, v in self.baggage.items())
        return headers

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> Optional['TraceContext']:
        """Parse W3C headers. Returns None when absent or malformed."""
        lowered = {k.lower(): v for k, v in headers.items()}
        traceparent = lowered.get('traceparent')
        if not traceparent:
            return None

        parts = traceparent.strip().split('-')
        if len(parts) != 4 or len(parts[1]) != 32 or len(parts[2]) != 16:
            return None
        try:
            int(parts[1], 16)
            int(parts[2], 16)
            flags = int(parts[3], 16)
        except ValueError:
            return None

        baggage = {}
        for item in lowered.get('baggage', '').split(','):
            if '=' in item:
                key, value = item.split('=', 1)
                baggage[key.strip()] = value.strip()

        return cls(
            trace_id=parts[1],
            span_id=parts[2],
            sampled=bool(flags & 0x01),
            baggage=baggage
        )


class SpanExporter(ABC):
    """Abstract base class for span exporters"""

    @abstractmethod
    def export(self, spans: List[Span]) -> None:
        """Export spans to external system"""
        pass

    def shutdown(self) -> None:
        pass


class LoggingSpanExporter(SpanExporter):
    """Writes finished spans to the module logger, for development"""

    def export(self, spans: List[Span]) -> None:
        for span in spans:
            logger.info(
                f"span {span.operation_name} trace={span.trace_id} span={span.span_id} "
                f"parent={span.parent_span_id} duration={span.duration_ms}ms status={span.status.value}"
            )


class ZipkinSpanExporter(SpanExporter):
    """
    Posts spans as Zipkin v2 JSON.

    Jaeger collectors accept this payload on their Zipkin-compatible port,
    e.g. ``http://jaeger:9411/api/v2/spans``.
    """

    def __init__(self, endpoint: str, service_name: str, timeout: float = 5.0, client: Optional[httpx.Client] = None):
        self.endpoint = endpoint
        self.service_name = service_name
        self._client = client or httpx.Client(timeout=timeout)

    def export(self, spans: List[Span]) -> None:
        payload = [self._to_zipkin(span) for span in spans]
        response = self._client.post(self.endpoint, json=payload)
        response.raise_for_status()

    def shutdown(self) -> None:
        self._client.close()

    def _to_zipkin(self, span: Span) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "traceId": span.trace_id,
            "id": span.span_id,
            "name": span.operation_name,
            "timestamp": _micros(span.start_time),
            "duration": int((span.duration_ms or 0) * 1000),
            "localEndpoint": {"serviceName": self.service_name},
            "tags": {k: str(v) for k, v in span.tags.items()},
        }
        if span.parent_span_id:
            body["parentId"] = span.parent_span_id
        if span.kind != SpanKind.INTERNAL:
            body["kind"] = span.kind.name
        if span.events:
            body["annotations"] = [
                {"timestamp": _micros(event.timestamp), "value": event.name}
                for event in span.events
            ]
        return body


def _micros(moment: datetime) -> int:
    return int(moment.timestamp() * 1_000_000)


def _new_trace_id() -> str:
    return secrets.token_hex(16)


def _new_span_id() -> str:
    return secrets.token_hex(8)


class Tracer:
    """
    Tracer for one service.

    Completed spans are buffered and handed to every exporter once the batch
    is full or on flush(). Safe to use from request threads and background
    threads at the same time.
    """

    def __init__(
        self,
        service_name: str = "microkit",
        service_version: str = "",
        environment: str = "",
        max_batch_size: int = 512
    ):
        self.service_name = service_name
        self.service_version = service_version
        self.environment = environment
        self.max_batch_size = max_batch_size
        self.exporters: List[SpanExporter] = []
        self.active_spans: Dict[str, Span] = {}
        self.completed_spans: List[Span] = []
        self._lock = threading.Lock()

    def add_exporter(self, exporter: SpanExporter) -> None:
        self.exporters.append(exporter)

    def start_span(
        self,
        operation_name: str,
        parent_context: Optional[TraceContext] = None,
        kind: SpanKind = SpanKind.INTERNAL,
        tags: Optional[Dict[str, Any]] = None
    ) -> Span:
        if parent_context:
            trace_id = parent_context.trace_id
            parent_span_id = parent_context.span_id
        else:
            current_trace_id = trace_id_var.get()
            current_span_id = span_id_var.get()

            if current_trace_id and current_span_id:
                trace_id = current_trace_id
                parent_span_id = current_span_id
            else:
                trace_id = _new_trace_id()
                parent_span_id = None

        span = Span(
            trace_id=trace_id,
            span_id=_new_span_id(),
            parent_span_id=parent_span_id,
            operation_name=operation_name,
            start_time=datetime.now(timezone.utc),
            kind=kind
        )

        span.add_tag("service.name", self.service_name)
        if self.service_version:
            span.add_tag("service.version", self.service_version)
        if self.environment:
            span.add_tag("deployment.environment", self.environment)

        for key, value in (tags or {}).items():
            span.add_tag(key, value)

        with self._lock:
            self.active_spans[span.span_id] = span

        return span

    def finish_span(self, span: Span, status: SpanStatus = SpanStatus.OK) -> None:
        span.finish(status)

        with self._lock:
            self.active_spans.pop(span.span_id, None)
            self.completed_spans.append(span)
            batch_full = len(self.completed_spans) >= self.max_batch_size

        if batch_full:
            self.flush()

    def flush(self) -> None:
        """Export completed spans and clear the buffer"""
        with self._lock:
            batch = self.completed_spans
            self.completed_spans = []

        if not batch:
            return

        for exporter in self.exporters:
            try:
                exporter.export(list(batch))
            except Exception as e:
                logger.error(f"Failed to export {len(batch)} spans via {type(exporter).__name__}: {e}")

    def shutdown(self) -> None:
        self.flush()
        for exporter in self.exporters:
            exporter.shutdown()

    @contextmanager
    def trace_operation(
        self,
        operation_name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        tags: Optional[Dict[str, Any]] = None,
        parent_context: Optional[TraceContext] = None
    ):
        """Context manager for tracing an operation"""
        span = self.start_span(operation_name, parent_context=parent_context, kind=kind, tags=tags)

        trace_token = trace_id_var.set(span.trace_id)
        span_token = span_id_var.set(span.span_id)
        parent_token = parent_span_id_var.set(span.parent_span_id)

        try:
            yield span
            self.finish_span(span, SpanStatus.OK)
        except Exception as e:
            span.set_error(e)
            self.finish_span(span, SpanStatus.ERROR)
            raise
        finally:
            trace_id_var.reset(trace_token)
            span_id_var.reset(span_token)
            parent_span_id_var.reset(parent_token)

    def get_current_context(self) -> Optional[TraceContext]:
        trace_id = trace_id_var.get()
        span_id = span_id_var.get()

        if trace_id and span_id:
            return TraceContext(
                trace_id=trace_id,
                span_id=span_id,
                parent_span_id=parent_span_id_var.get()
            )
        return None


def trace_method(
    operation_name: Optional[str] = None,
    kind: SpanKind = SpanKind.INTERNAL,
    tags: Optional[Dict[str, Any]] = None
):
    """
    Decorator for automatic function tracing, sync or async.

    Usage:
        @trace_method("s3.upload_object", SpanKind.CLIENT)
        def upload_object(self, ...):
            ...
    """
    def decorator(func: F) -> F:
        op_name = operation_name or f"{func.__module__}.{func.__qualname__}"

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            with get_tracer().trace_operation(op_name, kind, tags):
                return func(*args, **kwargs)

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            with get_tracer().trace_operation(op_name, kind, tags):
                return await func(*args, **kwargs)

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


_tracer: Optional[Tracer] = None


def get_tracer() -> Tracer:
    """Get the process tracer, creating an exporter-less one on first use"""
    global _tracer
    if _tracer is None:
        _tracer = Tracer()
    return _tracer


def set_tracer(tracer: Optional[Tracer]) -> None:
    global _tracer
    _tracer = tracer


def init_tracer(config: "ConfigurationStore") -> Tracer:
    """
    Build and install the process tracer from configuration.

    Keys read: ``jaeger_endpoint`` (Zipkin-compatible collector URL; when
    empty spans are only written to the log), ``service_name``,
    ``service_version`` and ``environment``.
    """
    service_name = config.get_string("service_name") or "microkit"
    tracer = Tracer(
        service_name=service_name,
        service_version=config.get_string("service_version"),
        environment=config.get_string("environment")
    )

    endpoint = config.get_string("jaeger_endpoint")
    if endpoint:
        tracer.add_exporter(ZipkinSpanExporter(endpoint, service_name))
    else:
        tracer.add_exporter(LoggingSpanExporter())

    set_tracer(tracer)
    logger.info(f"Tracer initialized for service '{service_name}' (exporter: {endpoint or 'log'})")
    return tracer


def get_trace_id() -> Optional[str]:
    return trace_id_var.get()


def get_span_id() -> Optional[str]:
    return span_id_var.get()
