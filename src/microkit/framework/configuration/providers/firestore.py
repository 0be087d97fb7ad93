"""
Firestore-backed configuration documents.

A service's document lives at ``<service_name>/<environment>``: the
collection is the service name and the document id is the environment.
"""

import logging
import threading
from typing import Any, List, Optional

from google.api_core import exceptions as gcp_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud.firestore import Client as FirestoreClient

from ....infrastructure.exceptions import ConfigurationError, NotFoundError, TransportError
from ..models import ConfigDocument
from ..sources import QueueSubscription, RemoteDocumentSource, Subscription, normalize_document

logger = logging.getLogger(__name__)


class FirestoreDocumentSource(RemoteDocumentSource):
    """
    Reads and watches configuration documents in Cloud Firestore.

    The client is created lazily from application default credentials
    unless one is injected.
    """

    def __init__(
        self,
        project_id: Optional[str] = None,
        client: Optional[FirestoreClient] = None,
        timeout: Optional[float] = None
    ):
        self.project_id = project_id
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._lock = threading.Lock()

    @property
    def client(self) -> FirestoreClient:
        with self._lock:
            if self._client is None:
                try:
                    self._client = FirestoreClient(project=self.project_id)
                except (auth_exceptions.GoogleAuthError, gcp_exceptions.GoogleAPIError) as e:
                    raise TransportError(
                        f"Failed to create Firestore client for project '{self.project_id}': {e}",
                        cause=e
                    ) from e
                logger.info(f"Created Firestore client for project {self._client.project}")
            return self._client

    def fetch(self, path: str) -> ConfigDocument:
        reference = self.client.document(path)

        try:
            if self.timeout is None:
                snapshot = reference.get()
            else:
                snapshot = reference.get(timeout=self.timeout)
        except gcp_exceptions.NotFound as e:
            raise NotFoundError(f"Configuration document not found: {path}", config_path=path, cause=e) from e
        except (auth_exceptions.GoogleAuthError, gcp_exceptions.GoogleAPIError) as e:
            raise TransportError(f"Failed to read configuration document {path}: {e}", config_path=path, cause=e) from e

        if not snapshot.exists:
            raise NotFoundError(f"Configuration document not found: {path}", config_path=path)

        return normalize_document(snapshot.to_dict(), path)

    def subscribe(self, path: str) -> Subscription:
        subscription = QueueSubscription(path)

        def on_snapshot(snapshots: List[Any], changes: Any, read_time: Any) -> None:
            try:
                subscription.publish(_snapshot_document(snapshots, path))
            except ConfigurationError as e:
                subscription.fail(e)

        try:
            watch = self.client.document(path).on_snapshot(on_snapshot)
        except (auth_exceptions.GoogleAuthError, gcp_exceptions.GoogleAPIError) as e:
            raise TransportError(f"Failed to subscribe to configuration document {path}: {e}", config_path=path, cause=e) from e

        # The SDK closes its watch stream on unrecoverable errors without calling back
        subscription.set_liveness_probe(lambda: not getattr(watch, "_closed", False))
        subscription.on_stop(watch.unsubscribe)

        logger.info(f"Watching configuration document {path}")
        return subscription

    def close(self) -> None:
        if not self._owns_client:
            return
        with self._lock:
            client, self._client = self._client, None
        if client is not None:
            client.close()


def _snapshot_document(snapshots: List[Any], path: str) -> ConfigDocument:
    """Turn the snapshot list delivered by the watch stream into a document."""
    if not snapshots:
        raise NotFoundError(f"Configuration document was deleted: {path}", config_path=path)

    snapshot = snapshots[-1]
    if not snapshot.exists:
        raise NotFoundError(f"Configuration document was deleted: {path}", config_path=path)

    return normalize_document(snapshot.to_dict(), path)
