"""
HTTP server bootstrapping on FastAPI and uvicorn.
"""

import logging
import time
from typing import TYPE_CHECKING, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ...infrastructure.exceptions import ServerError
from ...infrastructure.observability.tracing import SpanKind, TraceContext, Tracer, get_tracer

if TYPE_CHECKING:
    from ...framework.configuration.store import ConfigurationStore

logger = logging.getLogger(__name__)
access_logger = logging.getLogger(f"{__name__}.access")

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080


def new_router(config: "ConfigurationStore", tracer: Optional[Tracer] = None) -> FastAPI:
    """
    Create the service's FastAPI application.

    Every request gets a server span (continuing an inbound W3C trace
    context), an access log line, and unhandled errors become a 500 JSON
    response instead of a dropped connection.
    """
    service_name = config.get_string("service_name") or "microkit"
    # gin_mode is the key older configuration documents carry
    mode = config.get_string("webserver_mode") or config.get_string("gin_mode")
    app = FastAPI(title=service_name, debug=mode.strip().lower() == "debug")

    # Registered innermost first: tracing wraps access logging wraps recovery
    @app.middleware("http")
    async def recovery(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled error serving {request.method} {request.url.path}: {e}", exc_info=True)
            return JSONResponse(status_code=500, content={"error": "internal server error"})

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        client = request.client.host if request.client else "-"
        access_logger.info(
            f'{client} "{request.method} {request.url.path}" {response.status_code} {elapsed_ms:.1f}ms'
        )
        return response

    @app.middleware("http")
    async def tracing(request: Request, call_next):
        active_tracer = tracer or get_tracer()
        parent = TraceContext.from_headers(request.headers)
        tags = {
            "http.method": request.method,
            "http.route": request.url.path,
            "service.component": service_name,
        }
        with active_tracer.trace_operation(
            f"{request.method} {request.url.path}", SpanKind.SERVER, tags, parent_context=parent
        ) as span:
            response = await call_next(request)
            span.add_tag("http.status_code", response.status_code)
            if response.status_code >= 500:
                span.add_tag("error", True)
            response.headers["traceparent"] = f"00-{span.trace_id}-{span.span_id}-01"
            return response

    return app


class HTTPServer:
    """Runs an ASGI application with uvicorn until shutdown() is called."""

    def __init__(self, config: Optional["ConfigurationStore"] = None):
        self._config = config
        self._server: Optional[uvicorn.Server] = None

    def run(self, app: FastAPI, host: Optional[str] = None, port: Optional[int] = None) -> None:
        """
        Serve ``app``, blocking the calling thread.

        Host and port default to ``http_server_host`` / ``http_server_port``
        from the configuration, then to 0.0.0.0:8080.

        Raises:
            ServerError: the server failed to start
        """
        if host is None:
            host = (self._config.get_string("http_server_host") if self._config else "") or DEFAULT_HOST
        if port is None:
            port = (self._config.get_int("http_server_port") if self._config else 0) or DEFAULT_PORT

        address = f"{host}:{port}"
        self._server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_config=None))
        logger.info(f"Starting HTTP server on {address}")

        try:
            self._server.run()
        except SystemExit as e:
            # uvicorn exits instead of raising when it cannot bind
            raise ServerError(f"HTTP server failed to start on {address}", address=address, protocol="http", cause=e) from e

        logger.info(f"HTTP server on {address} stopped")

    def shutdown(self) -> None:
        if self._server is not None:
            self._server.should_exit = True

    @property
    def started(self) -> bool:
        return self._server is not None and self._server.started
