"""
Remote document sources for loading and watching configuration documents.
"""

import base64
import json
import logging
import queue
import threading
import time
from abc import ABC, abstractmethod
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Tuple, Union

import yaml

from ...infrastructure.exceptions import (
    ConfigurationError, DecodeError, NotFoundError, SubscriptionClosedError, TransportError
)
from .models import ConfigDocument

logger = logging.getLogger(__name__)


def normalize_document(data: Any, path: str) -> ConfigDocument:
    """
    Coerce a raw payload into a JSON-compatible configuration document.

    Timestamps become ISO-8601 strings and byte strings become standard
    base64 text. Anything that is not a mapping, or holds values with no
    JSON representation, raises DecodeError.
    """
    if not isinstance(data, dict):
        raise DecodeError(
            f"Configuration document at '{path}' is not a mapping (got {type(data).__name__})",
            config_path=path
        )

    try:
        return json.loads(json.dumps(data, default=_encode_value))
    except (TypeError, ValueError) as e:
        raise DecodeError(
            f"Configuration document at '{path}' cannot be decoded: {e}",
            config_path=path,
            cause=e
        ) from e


def _encode_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    raise TypeError(f"value of type {type(value).__name__} is not JSON serializable")


class Subscription(ABC):
    """
    Live feed of configuration snapshots for one document path.

    Each element is the complete document, never a diff. A stopped
    subscription cannot be restarted.
    """

    path: str

    @abstractmethod
    def next(self, timeout: Optional[float] = None) -> ConfigDocument:
        """
        Block until the next snapshot arrives.

        Raises:
            DecodeError / NotFoundError / TransportError: delivery failed
            SubscriptionClosedError: the feed was stopped or has ended
            TimeoutError: ``timeout`` elapsed without an event
        """
        pass

    @abstractmethod
    def stop(self) -> None:
        """Release the feed. Idempotent; wakes a blocked ``next()``."""
        pass

    @property
    @abstractmethod
    def stopped(self) -> bool:
        pass

    def __iter__(self) -> Iterator[ConfigDocument]:
        while True:
            try:
                yield self.next()
            except SubscriptionClosedError:
                return


_SNAPSHOT = "snapshot"
_ERROR = "error"
_CLOSED = "closed"


class QueueSubscription(Subscription):
    """
    Subscription backed by a thread-safe queue.

    SDK callbacks or poller threads push events with ``publish``/``fail``/
    ``close``; the consumer pulls them with ``next``. An optional liveness
    probe is checked while the queue is idle so that a feed which died
    without reporting an error is noticed.
    """

    def __init__(
        self,
        path: str,
        liveness_probe: Optional[Callable[[], bool]] = None,
        idle_check_interval: float = 1.0
    ):
        self.path = path
        self._liveness_probe = liveness_probe
        self._idle_check_interval = idle_check_interval
        self._queue: "queue.Queue[Tuple[str, Any]]" = queue.Queue()
        self._stop_callbacks: List[Callable[[], None]] = []
        self._stopped = threading.Event()
        self._closed = False
        self._lock = threading.Lock()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def publish(self, document: ConfigDocument) -> None:
        if not self._stopped.is_set():
            self._queue.put((_SNAPSHOT, document))

    def fail(self, error: ConfigurationError) -> None:
        if not self._stopped.is_set():
            self._queue.put((_ERROR, error))

    def close(self, reason: str = "feed ended") -> None:
        """Mark the feed as ended from the producer side."""
        self._queue.put((_CLOSED, reason))

    def on_stop(self, callback: Callable[[], None]) -> None:
        """Register a callback that releases the underlying resource."""
        with self._lock:
            self._stop_callbacks.append(callback)

    def set_liveness_probe(self, probe: Callable[[], bool]) -> None:
        self._liveness_probe = probe

    def next(self, timeout: Optional[float] = None) -> ConfigDocument:
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            if self._stopped.is_set():
                raise SubscriptionClosedError(f"Subscription to '{self.path}' was stopped", config_path=self.path)
            if self._closed:
                raise SubscriptionClosedError(f"Subscription to '{self.path}' has ended", config_path=self.path)

            wait = self._idle_check_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TimeoutError(f"No configuration event for '{self.path}' within {timeout}s")
                wait = min(wait, remaining)

            try:
                kind, payload = self._queue.get(timeout=wait)
            except queue.Empty:
                if self._liveness_probe is not None and not self._liveness_probe():
                    self._closed = True
                continue

            if kind == _SNAPSHOT:
                return payload
            if kind == _ERROR:
                raise payload
            if not self._stopped.is_set():
                logger.warning(f"Subscription to '{self.path}' closed by producer: {payload}")
            self._closed = True

    def stop(self) -> None:
        with self._lock:
            if self._stopped.is_set():
                return
            self._stopped.set()
            callbacks = list(self._stop_callbacks)

        # Wake a consumer blocked in next()
        self._queue.put((_CLOSED, "stopped"))

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Error releasing subscription to '{self.path}': {e}")


class RemoteDocumentSource(ABC):
    """Abstract base class for configuration document stores."""

    @abstractmethod
    def fetch(self, path: str) -> ConfigDocument:
        """
        Read the document at ``path`` once.

        Raises:
            NotFoundError: no document exists at ``path``
            TransportError: network or authentication failure
            DecodeError: the payload is not a configuration document
        """
        pass

    @abstractmethod
    def subscribe(self, path: str) -> Subscription:
        """Open a live feed of snapshots for ``path``; the first one is the current state."""
        pass

    def close(self) -> None:
        """Release the client."""


class YAMLDocumentSource(RemoteDocumentSource):
    """
    Document store backed by a directory of YAML (or JSON) files.

    The document ``billing/staging`` lives in
    ``<base_directory>/billing/staging.yaml``. Subscriptions poll the file's
    modification time and publish a new snapshot whenever it changes.
    """

    SUFFIXES = (".yaml", ".yml", ".json")

    def __init__(self, base_directory: Union[str, Path], poll_interval: float = 1.0):
        self.base_directory = Path(base_directory)
        self.poll_interval = poll_interval

    def resolve(self, path: str) -> Optional[Path]:
        for suffix in self.SUFFIXES:
            candidate = self.base_directory / f"{path}{suffix}"
            if candidate.is_file():
                return candidate
        return None

    def fetch(self, path: str) -> ConfigDocument:
        file_path = self.resolve(path)
        if file_path is None:
            raise NotFoundError(
                f"Configuration document not found: {path} (searched {self.base_directory})",
                config_path=path
            )

        try:
            text = file_path.read_text(encoding='utf-8')
        except OSError as e:
            raise TransportError(
                f"Error reading configuration file: {file_path}",
                config_path=path,
                cause=e
            ) from e

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise DecodeError(
                f"Invalid YAML in configuration file: {file_path}",
                config_path=path,
                context={"yaml_error": str(e)},
                cause=e
            ) from e

        return normalize_document({} if data is None else data, path)

    def subscribe(self, path: str) -> Subscription:
        subscription = QueueSubscription(path)
        stop_event = threading.Event()
        subscription.on_stop(stop_event.set)

        poller = threading.Thread(
            target=self._poll,
            args=(path, subscription, stop_event),
            name=f"YAMLConfigPoll[{path}]",
            daemon=True
        )
        poller.start()
        subscription.set_liveness_probe(poller.is_alive)
        return subscription

    def _poll(self, path: str, subscription: QueueSubscription, stop_event: threading.Event) -> None:
        last_marker: Any = object()

        while not stop_event.is_set():
            marker = self._file_marker(path)
            if marker != last_marker:
                last_marker = marker
                try:
                    subscription.publish(self.fetch(path))
                except ConfigurationError as e:
                    subscription.fail(e)

            stop_event.wait(self.poll_interval)

    def _file_marker(self, path: str) -> Optional[Tuple[str, int, int]]:
        file_path = self.resolve(path)
        if file_path is None:
            return None
        try:
            stat = file_path.stat()
        except OSError:
            return None
        return (str(file_path), stat.st_mtime_ns, stat.st_size)
