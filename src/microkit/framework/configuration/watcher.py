"""
Background watch loop that keeps a ConfigurationStore in sync with a
remote configuration document.
"""

import logging
import os
import threading
from enum import Enum
from typing import Callable, Optional

from ...infrastructure.exceptions import (
    ConfigurationError, DecodeError, NotFoundError, TransportError
)
from ...infrastructure.resilience import RetryConfig, RetryPolicy
from .models import WatchErrorPolicy, WatchSettings
from .sources import RemoteDocumentSource, Subscription
from .store import ConfigurationStore

logger = logging.getLogger(__name__)

TerminateHandler = Callable[[BaseException], None]


def terminate_process(error: BaseException) -> None:
    """
    Default terminate handler: log and exit with status 1.

    The watch runs on a daemon thread, so raising would only end that
    thread; ``os._exit`` takes the whole process down.
    """
    logger.critical(f"Configuration watch failed, terminating process: {error}")
    logging.shutdown()
    os._exit(1)


class WatchState(str, Enum):
    IDLE = "idle"
    SUBSCRIBING = "subscribing"
    WATCHING = "watching"
    RESUBSCRIBING = "resubscribing"
    STOPPED = "stopped"
    TERMINATED = "terminated"


_ACTIVE_STATES = (WatchState.SUBSCRIBING, WatchState.WATCHING, WatchState.RESUBSCRIBING)


class WatchLoop:
    """
    Consumes a subscription for one document path and merges every
    snapshot into the store, in delivery order.

    Errors are terminal unless the settings relax them: decode errors and
    a deleted document follow their ``WatchErrorPolicy``, and a dropped
    feed is re-established up to ``resubscribe_attempts`` times.
    """

    def __init__(
        self,
        source: RemoteDocumentSource,
        store: ConfigurationStore,
        path: str,
        settings: Optional[WatchSettings] = None,
        terminate: TerminateHandler = terminate_process
    ):
        self.path = path
        self._source = source
        self._store = store
        self._settings = settings or WatchSettings()
        self._terminate_handler = terminate

        self._state = WatchState.IDLE
        self._merge_count = 0
        self._last_error: Optional[BaseException] = None
        self._outage_attempts = 0

        self._subscription: Optional[Subscription] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()

    @property
    def state(self) -> WatchState:
        with self._lock:
            return self._state

    @property
    def merge_count(self) -> int:
        """Snapshots merged by this loop (the initial load is not counted)."""
        with self._lock:
            return self._merge_count

    @property
    def last_error(self) -> Optional[BaseException]:
        with self._lock:
            return self._last_error

    @property
    def settings(self) -> WatchSettings:
        return self._settings

    @property
    def source(self) -> RemoteDocumentSource:
        return self._source

    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive() and self.state in _ACTIVE_STATES

    def start(self) -> "WatchLoop":
        with self._lock:
            if self._thread is not None:
                raise RuntimeError(f"Watch loop for '{self.path}' was already started")
            self._thread = threading.Thread(
                target=self._run,
                name=f"ConfigWatch[{self.path}]",
                daemon=True
            )
        self._thread.start()
        return self

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the subscription and wait for the loop thread to exit."""
        self._stop_event.set()
        self._release_subscription()

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout if timeout is not None else self._settings.stop_timeout)
            if thread.is_alive():
                # The loop marks itself STOPPED once it exits
                logger.warning(f"Configuration watch for '{self.path}' did not stop within timeout")
                return

        with self._lock:
            if self._state != WatchState.TERMINATED:
                self._state = WatchState.STOPPED

    def join(self, timeout: Optional[float] = None) -> None:
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def _run(self) -> None:
        try:
            self._watch()
        finally:
            # No-op after a termination
            self._set_state(WatchState.STOPPED)

    def _watch(self) -> None:
        self._set_state(WatchState.SUBSCRIBING)
        try:
            self._open_subscription()
        except Exception as e:
            if not self._stop_event.is_set():
                self._terminate(e, "subscribe failed")
            return

        self._set_state(WatchState.WATCHING)
        logger.info(f"Watching configuration document '{self.path}'")

        while not self._stop_event.is_set():
            subscription = self._subscription
            if subscription is None:
                break

            try:
                document = subscription.next()
            except DecodeError as e:
                if not self._apply_policy(e, self._settings.on_decode_error, "undecodable snapshot"):
                    return
                continue
            except NotFoundError as e:
                if not self._apply_policy(e, self._settings.on_missing_document, "document missing"):
                    return
                continue
            except TransportError as e:
                if self._stop_event.is_set():
                    break
                if not self._resubscribe(e):
                    return
                continue
            except Exception as e:
                if self._stop_event.is_set():
                    break
                self._terminate(e, "unexpected error")
                return

            self._store.merge(document)
            with self._lock:
                self._merge_count += 1
                self._outage_attempts = 0
            logger.info(f"Applied configuration update for '{self.path}'")

        logger.info(f"Configuration watch for '{self.path}' stopped")

    def _open_subscription(self) -> None:
        subscription = self._source.subscribe(self.path)
        with self._lock:
            self._subscription = subscription
        # stop() may have run while subscribe() was in flight
        if self._stop_event.is_set():
            self._release_subscription()

    def _release_subscription(self) -> None:
        with self._lock:
            subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.stop()

    def _apply_policy(self, error: ConfigurationError, policy: WatchErrorPolicy, reason: str) -> bool:
        """Return True when the loop should keep watching."""
        if self._stop_event.is_set():
            return False
        if policy == WatchErrorPolicy.LOG_AND_CONTINUE:
            with self._lock:
                self._last_error = error
            logger.warning(
                f"Ignoring {reason} for '{self.path}', keeping last applied configuration: {error}"
            )
            return True
        self._terminate(error, reason)
        return False

    def _resubscribe(self, error: TransportError) -> bool:
        """Replace a dead subscription. Return True once a new one is open."""
        attempts = self._settings.resubscribe_attempts
        remaining = attempts - self._outage_attempts
        if remaining <= 0:
            self._terminate(error, "subscription lost")
            return False

        self._set_state(WatchState.RESUBSCRIBING)
        with self._lock:
            self._last_error = error
        logger.warning(f"Subscription to '{self.path}' lost, re-subscribing: {error}")
        self._release_subscription()

        # The previous replacement died before delivering anything
        if self._outage_attempts > 0 and self._stop_event.wait(self._settings.resubscribe_base_delay):
            return False

        def attempt() -> None:
            with self._lock:
                self._outage_attempts += 1
            self._open_subscription()

        policy = RetryPolicy(
            RetryConfig(
                max_attempts=remaining,
                base_delay=self._settings.resubscribe_base_delay,
                max_delay=self._settings.resubscribe_max_delay,
                retryable_exceptions=(TransportError,)
            ),
            stop_event=self._stop_event
        )

        try:
            policy.execute(attempt, f"resubscribe {self.path}")
        except Exception as e:
            if self._stop_event.is_set():
                return False
            self._terminate(e, "re-subscribe failed")
            return False

        if self._stop_event.is_set():
            return False

        self._set_state(WatchState.WATCHING)
        logger.info(f"Re-subscribed to configuration document '{self.path}'")
        return True

    def _terminate(self, error: BaseException, reason: str) -> None:
        with self._lock:
            self._last_error = error
            self._state = WatchState.TERMINATED
        logger.error(f"Configuration watch for '{self.path}' failed ({reason}): {error}")
        self._release_subscription()
        self._terminate_handler(error)

    def _set_state(self, state: WatchState) -> None:
        with self._lock:
            if self._state not in (WatchState.STOPPED, WatchState.TERMINATED):
                self._state = state
