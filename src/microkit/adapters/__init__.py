"""
Adapter Layer - ready-to-use clients and servers built from the configuration store.
"""

from .storage import AzureBlobStorage, S3ObjectStorage
from .database import build_database_url, new_db_engine, session_factory, session_scope
from .webserver import HTTPServer, new_router, new_grpc_server, keep_alive_with_signals

__all__ = [
    "S3ObjectStorage",
    "AzureBlobStorage",
    "build_database_url",
    "new_db_engine",
    "session_factory",
    "session_scope",
    "HTTPServer",
    "new_router",
    "new_grpc_server",
    "keep_alive_with_signals",
]
