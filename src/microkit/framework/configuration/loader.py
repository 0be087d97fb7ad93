"""
Initial load of a service's remote configuration and hand-off to the
watch loop.
"""

import logging
import threading
from typing import List, Optional, Tuple

from .models import ServiceIdentity, WatchSettings
from .providers.firestore import FirestoreDocumentSource
from .sources import RemoteDocumentSource
from .store import ConfigurationStore
from .watcher import TerminateHandler, WatchLoop, terminate_process

logger = logging.getLogger(__name__)


class ConfigLoader:
    """
    Loads a configuration document into a store and keeps it current.

    ``load`` is synchronous up to the first merge: if the initial fetch
    fails the error propagates to the caller and nothing is watched. After
    that the loader only starts the watch loop and returns it.
    """

    def __init__(
        self,
        source: RemoteDocumentSource,
        store: ConfigurationStore,
        settings: Optional[WatchSettings] = None,
        terminate: TerminateHandler = terminate_process
    ):
        self.source = source
        self.store = store
        self.settings = settings or WatchSettings()
        self._terminate = terminate
        self._watches: List[WatchLoop] = []
        self._lock = threading.Lock()

    @property
    def watches(self) -> List[WatchLoop]:
        with self._lock:
            return list(self._watches)

    def load(self, identity: ServiceIdentity) -> WatchLoop:
        """
        Fetch ``<service_name>/<environment>``, merge it and start watching.

        Each call starts its own watch loop; loading the same identity
        twice yields two loops merging into the same store.

        Raises:
            NotFoundError / TransportError / DecodeError: from the initial fetch
        """
        path = identity.document_path
        logger.info(f"Loading remote configuration document '{path}'")

        document = self.source.fetch(path)
        self.store.merge(document)
        logger.info(f"Loaded remote configuration document '{path}' ({len(document)} keys)")

        watch = WatchLoop(self.source, self.store, path, self.settings, self._terminate)
        with self._lock:
            self._watches.append(watch)
        return watch.start()

    def stop(self) -> None:
        """Stop every watch loop started by this loader and close the source."""
        with self._lock:
            watches, self._watches = self._watches, []

        for watch in watches:
            watch.stop()

        self.source.close()
        logger.info("Remote configuration loader stopped")


def load_remote_configuration(
    identity: ServiceIdentity,
    store: Optional[ConfigurationStore] = None,
    settings: Optional[WatchSettings] = None
) -> Tuple[ConfigurationStore, WatchLoop]:
    """
    Load a service's configuration from Firestore and start watching it.

    Uses the identity's project id (application default credentials pick
    the project when it is None).

    The Firestore client stays open until the process exits. To release
    it earlier, stop the watch and close its source::

        watch.stop()
        watch.source.close()

    Returns:
        The populated store and the running watch loop
    """
    store = store if store is not None else ConfigurationStore()
    loader = ConfigLoader(FirestoreDocumentSource(project_id=identity.project_id), store, settings)
    return store, loader.load(identity)
