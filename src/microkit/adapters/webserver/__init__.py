"""
HTTP and gRPC server bootstrapping.
"""

from .http import HTTPServer, new_router
from .grpc import TracingServerInterceptor, grpc_address, new_grpc_server
from .keepalive import keep_alive_with_signals

__all__ = [
    "HTTPServer",
    "new_router",
    "TracingServerInterceptor",
    "grpc_address",
    "new_grpc_server",
    "keep_alive_with_signals",
]
