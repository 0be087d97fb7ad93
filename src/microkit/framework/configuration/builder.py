"""
Configuration loader builder for creating ConfigLoader instances.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Union

from ...infrastructure.exceptions import ConfigurationError
from .loader import ConfigLoader
from .models import WatchErrorPolicy, WatchSettings
from .providers.firestore import FirestoreDocumentSource
from .sources import RemoteDocumentSource, YAMLDocumentSource
from .store import ConfigurationStore
from .watcher import TerminateHandler, terminate_process


class ConfigLoaderBuilder:
    """
    Builder for ConfigLoader instances.

    Picks the document store backend, the store the documents are merged
    into and the watch loop's error policies.
    """

    def __init__(self):
        self._source: Optional[RemoteDocumentSource] = None
        self._store: Optional[ConfigurationStore] = None
        self._env_prefix: str = ""
        self._settings: Dict[str, Any] = {}
        self._terminate: TerminateHandler = terminate_process

    def with_firestore(self, project_id: Optional[str] = None, timeout: Optional[float] = None) -> 'ConfigLoaderBuilder':
        """
        Read configuration documents from Cloud Firestore.

        Args:
            project_id: GCP project; application default credentials decide when None
            timeout: Per-request timeout in seconds for the initial fetch
        """
        self._source = FirestoreDocumentSource(project_id=project_id, timeout=timeout)
        return self

    def with_yaml_directory(self, path: Union[str, Path], poll_interval: float = 1.0) -> 'ConfigLoaderBuilder':
        """
        Read configuration documents from a local directory of YAML files.

        Args:
            path: Base directory holding ``<service>/<environment>.yaml``
            poll_interval: Seconds between modification checks
        """
        self._source = YAMLDocumentSource(path, poll_interval)
        return self

    def with_source(self, source: RemoteDocumentSource) -> 'ConfigLoaderBuilder':
        """Use a custom document store backend."""
        self._source = source
        return self

    def with_store(self, store: ConfigurationStore) -> 'ConfigLoaderBuilder':
        """Merge into an existing store instead of a new one."""
        self._store = store
        return self

    def with_env_prefix(self, prefix: str) -> 'ConfigLoaderBuilder':
        self._env_prefix = prefix
        return self

    def on_decode_error(self, policy: Union[WatchErrorPolicy, str]) -> 'ConfigLoaderBuilder':
        self._settings['on_decode_error'] = WatchErrorPolicy(policy)
        return self

    def on_missing_document(self, policy: Union[WatchErrorPolicy, str]) -> 'ConfigLoaderBuilder':
        self._settings['on_missing_document'] = WatchErrorPolicy(policy)
        return self

    def with_resubscribe(
        self,
        attempts: int,
        base_delay: float = 1.0,
        max_delay: float = 30.0
    ) -> 'ConfigLoaderBuilder':
        """
        Re-establish a dropped subscription instead of terminating.

        Args:
            attempts: Subscribe attempts per outage before giving up
            base_delay: First backoff delay in seconds
            max_delay: Upper bound for the backoff delay in seconds
        """
        self._settings['resubscribe_attempts'] = attempts
        self._settings['resubscribe_base_delay'] = base_delay
        self._settings['resubscribe_max_delay'] = max_delay
        return self

    def with_terminate_handler(self, handler: TerminateHandler) -> 'ConfigLoaderBuilder':
        """Replace the handler invoked when the watch loop gives up."""
        self._terminate = handler
        return self

    def build(self) -> ConfigLoader:
        """
        Build the loader.

        Returns:
            ConfigLoader bound to the chosen source and store

        Raises:
            ConfigurationError: no source was configured, or the store and
                env prefix disagree
        """
        if self._source is None:
            raise ConfigurationError("No configuration source configured; call with_firestore(), "
                                     "with_yaml_directory() or with_source()")

        store = self._store
        if store is None:
            store = ConfigurationStore(env_prefix=self._env_prefix)
        elif self._env_prefix and store.env_prefix != self._env_prefix.strip().rstrip("_").upper():
            raise ConfigurationError(
                f"Env prefix '{self._env_prefix}' conflicts with the supplied store's prefix '{store.env_prefix}'"
            )

        return ConfigLoader(self._source, store, WatchSettings(**self._settings), self._terminate)
