"""
Remote Configuration System

Loads a service's configuration document from a remote document store,
merges it into a thread-safe ConfigurationStore with environment variable
overrides, and keeps it current through a background watch loop.
"""

from .models import (
    ConfigDocument,
    ServiceIdentity,
    WatchErrorPolicy,
    WatchSettings
)

from .store import ConfigurationStore

from .sources import (
    RemoteDocumentSource,
    Subscription,
    QueueSubscription,
    YAMLDocumentSource,
    normalize_document
)

from .providers import FirestoreDocumentSource

from .watcher import WatchLoop, WatchState, terminate_process

from .loader import ConfigLoader, load_remote_configuration

from .builder import ConfigLoaderBuilder

__all__ = [
    # Models
    'ConfigDocument',
    'ServiceIdentity',
    'WatchErrorPolicy',
    'WatchSettings',

    # Store
    'ConfigurationStore',

    # Sources
    'RemoteDocumentSource',
    'Subscription',
    'QueueSubscription',
    'YAMLDocumentSource',
    'FirestoreDocumentSource',
    'normalize_document',

    # Watch
    'WatchLoop',
    'WatchState',
    'terminate_process',

    # Loader
    'ConfigLoader',
    'ConfigLoaderBuilder',
    'load_remote_configuration'
]
