"""
Block the main thread until the process is asked to stop.
"""

import logging
import signal
import threading
from typing import Any, Callable, Optional, Sequence

_logger = logging.getLogger(__name__)

_SIGNAL_DESCRIPTIONS = {
    signal.SIGINT: "SIGINT (signal interrupt)",
    signal.SIGTERM: "SIGTERM (signal termination)",
}


def keep_alive_with_signals(
    shutdown: Callable[[], None],
    logger: Optional[Any] = None,
    signals: Sequence[int] = (signal.SIGINT, signal.SIGTERM)
) -> int:
    """
    Wait for one of ``signals``, then call ``shutdown``.

    Must run on the main thread. The previous handlers are restored before
    ``shutdown`` runs, so a second signal gets the default behavior.

    Args:
        shutdown: Stops the service's servers
        logger: ServiceLogger or logging.Logger; defaults to this module's logger
        signals: Signals that end the wait

    Returns:
        The signal number received
    """
    log = logger or _logger
    received = threading.Event()
    caught = []

    def handler(signum, frame):
        caught.append(signum)
        received.set()

    previous = {sig: signal.signal(sig, handler) for sig in signals}
    try:
        # Short waits keep the main thread responsive to signal delivery
        while not received.wait(0.5):
            pass
    finally:
        for sig, old_handler in previous.items():
            signal.signal(sig, old_handler)

    signum = caught[0]
    description = _SIGNAL_DESCRIPTIONS.get(signum, signal.Signals(signum).name)

    log.debug(f"Service terminated with {description}")
    log.info("Stopping service servers")
    shutdown()
    log.info("Service servers stopped")
    return signum
