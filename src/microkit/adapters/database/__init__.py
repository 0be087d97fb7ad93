"""
Relational database adapters.
"""

from .postgres import build_database_url, new_db_engine, session_factory, session_scope

__all__ = [
    "build_database_url",
    "new_db_engine",
    "session_factory",
    "session_scope",
]
