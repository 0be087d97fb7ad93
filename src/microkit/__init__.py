"""
microkit - boilerplate clients for microservice infrastructure.

The centerpiece is the remote configuration subsystem: a service loads its
configuration document from a remote document store, merges it into a
ConfigurationStore and keeps it current through a background watch loop.
"""

from .framework.configuration import (
    ServiceIdentity,
    WatchSettings,
    WatchErrorPolicy,
    ConfigurationStore,
    ConfigLoader,
    ConfigLoaderBuilder,
    WatchLoop,
    load_remote_configuration,
)
from .infrastructure.exceptions import (
    MicrokitException,
    ConfigurationError,
    NotFoundError,
    TransportError,
    DecodeError,
)

__version__ = "0.3.0"

__all__ = [
    "ServiceIdentity",
    "WatchSettings",
    "WatchErrorPolicy",
    "ConfigurationStore",
    "ConfigLoader",
    "ConfigLoaderBuilder",
    "WatchLoop",
    "load_remote_configuration",
    "MicrokitException",
    "ConfigurationError",
    "NotFoundError",
    "TransportError",
    "DecodeError",
]
