"""
In-memory document sources for exercising the loader and watch loop
without a real document store.
"""

import threading
import time
from typing import Any, Callable, Dict, List, Optional

from microkit.framework.configuration import QueueSubscription, RemoteDocumentSource
from microkit.infrastructure.exceptions import NotFoundError


class FakeDocumentSource(RemoteDocumentSource):
    """
    Document source backed by a dict of path -> document.

    Every subscription is a real QueueSubscription recorded in
    ``subscriptions`` so tests can publish snapshots or inject failures.
    ``subscribe_errors`` are raised by successive subscribe() calls before
    subscribing succeeds again.
    """

    def __init__(self, documents: Optional[Dict[str, Dict[str, Any]]] = None):
        self.documents = dict(documents or {})
        self.fetch_error: Optional[Exception] = None
        self.subscribe_errors: List[Exception] = []
        self.fail_all_subscribes: Optional[Exception] = None
        self.subscriptions: List[QueueSubscription] = []
        self.fetch_calls = 0
        self.subscribe_calls = 0
        self.closed = False
        self._lock = threading.Lock()

    def fetch(self, path: str) -> Dict[str, Any]:
        self.fetch_calls += 1
        if self.fetch_error is not None:
            raise self.fetch_error
        if path not in self.documents:
            raise NotFoundError(f"no document at {path}", config_path=path)
        return dict(self.documents[path])

    def subscribe(self, path: str) -> QueueSubscription:
        with self._lock:
            self.subscribe_calls += 1
            if self.fail_all_subscribes is not None:
                raise self.fail_all_subscribes
            if self.subscribe_errors:
                raise self.subscribe_errors.pop(0)
            subscription = QueueSubscription(path, idle_check_interval=0.05)
            self.subscriptions.append(subscription)
            return subscription

    def close(self) -> None:
        self.closed = True

    def latest_subscription(self, count: int = 1, timeout: float = 2.0) -> QueueSubscription:
        """Wait until at least ``count`` subscriptions exist and return the newest."""
        assert wait_until(lambda: len(self.subscriptions) >= count, timeout), \
            f"expected {count} subscriptions, got {len(self.subscriptions)}"
        return self.subscriptions[-1]


class TerminateRecorder:
    """Terminate handler that records the error instead of exiting."""

    def __init__(self):
        self.errors: List[BaseException] = []
        self.called = threading.Event()

    def __call__(self, error: BaseException) -> None:
        self.errors.append(error)
        self.called.set()


def wait_until(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
