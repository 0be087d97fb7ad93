"""
gRPC server bootstrapping.
"""

import logging
from concurrent import futures
from typing import TYPE_CHECKING, Any, Callable, Optional, Tuple

import grpc

from ...infrastructure.exceptions import ServerError
from ...infrastructure.observability.tracing import SpanKind, TraceContext, Tracer, get_tracer

if TYPE_CHECKING:
    from ...framework.configuration.store import ConfigurationStore

logger = logging.getLogger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_MAX_WORKERS = 10


class TracingServerInterceptor(grpc.ServerInterceptor):
    """Opens a server span around every RPC, continuing the caller's trace."""

    def __init__(self, tracer: Optional[Tracer] = None):
        self._tracer = tracer

    def intercept_service(self, continuation, handler_call_details):
        handler = continuation(handler_call_details)
        if handler is None:
            return None

        method = handler_call_details.method
        metadata = dict(handler_call_details.invocation_metadata or ())
        parent = TraceContext.from_headers(metadata)
        tracer = self._tracer or get_tracer()
        tags = {"rpc.system": "grpc", "rpc.method": method}

        def unary_response(behavior: Callable) -> Callable:
            def traced(request: Any, context: grpc.ServicerContext) -> Any:
                with tracer.trace_operation(method, SpanKind.SERVER, tags, parent_context=parent):
                    return behavior(request, context)
            return traced

        def streaming_response(behavior: Callable) -> Callable:
            def traced(request: Any, context: grpc.ServicerContext) -> Any:
                with tracer.trace_operation(method, SpanKind.SERVER, tags, parent_context=parent):
                    yield from behavior(request, context)
            return traced

        serializers = {
            "request_deserializer": handler.request_deserializer,
            "response_serializer": handler.response_serializer,
        }
        if handler.unary_unary:
            return grpc.unary_unary_rpc_method_handler(unary_response(handler.unary_unary), **serializers)
        if handler.unary_stream:
            return grpc.unary_stream_rpc_method_handler(streaming_response(handler.unary_stream), **serializers)
        if handler.stream_unary:
            return grpc.stream_unary_rpc_method_handler(unary_response(handler.stream_unary), **serializers)
        if handler.stream_stream:
            return grpc.stream_stream_rpc_method_handler(streaming_response(handler.stream_stream), **serializers)
        return handler


def grpc_address(config: "ConfigurationStore") -> str:
    """
    Listen address from ``rpc_server_network``, ``rpc_server_host`` and
    ``rpc_server_port``.

    ``tcp`` (the default) yields ``host:port``; ``unix`` treats the host
    as a socket path.
    """
    network = config.get_string("rpc_server_network").strip().lower() or "tcp"
    host = config.get_string("rpc_server_host")

    if network == "unix":
        if not host:
            raise ServerError("rpc_server_host must name a socket path for unix networks", protocol="grpc")
        return f"unix:{host}"
    if network not in ("tcp", "tcp4", "tcp6"):
        raise ServerError(f"Unsupported rpc_server_network: {network}", protocol="grpc")

    return f"{host or DEFAULT_HOST}:{config.get_string('rpc_server_port') or '0'}"


def new_grpc_server(config: "ConfigurationStore", tracer: Optional[Tracer] = None) -> Tuple[grpc.Server, str]:
    """
    Create a gRPC server bound to the configured address.

    The server is returned unstarted so services can register their
    servicers first. For TCP the returned address carries the bound port,
    which matters when ``rpc_server_port`` is 0.

    Raises:
        ServerError: the address is invalid or cannot be bound
    """
    address = grpc_address(config)
    max_workers = config.get_int("rpc_server_max_workers") or DEFAULT_MAX_WORKERS

    server = grpc.server(
        futures.ThreadPoolExecutor(max_workers=max_workers),
        interceptors=[TracingServerInterceptor(tracer)]
    )

    try:
        port = server.add_insecure_port(address)
    except RuntimeError as e:
        raise ServerError(f"Failed to bind gRPC server to {address}: {e}", address=address, protocol="grpc", cause=e) from e
    # Older grpcio releases signal a bind failure with port 0
    if port == 0 and not address.startswith("unix:"):
        raise ServerError(f"Failed to bind gRPC server to {address}", address=address, protocol="grpc")

    if not address.startswith("unix:"):
        address = f"{address.rsplit(':', 1)[0]}:{port}"

    logger.info(f"gRPC server bound to {address} ({max_workers} workers)")
    return server, address
