"""Signal handling for cancelling blocking waits."""

from __future__ import annotations

import logging
import signal
import threading
import types
from collections.abc import Iterator
from contextlib import contextmanager

from devpod_aws.providers.exceptions import OperationCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe cancellation flag shared by blocking waits.

    Wraps a ``threading.Event`` so pollers can sleep on it and wake up as
    soon as a signal handler cancels the current invocation. Pollers register
    through ``waiting()`` so the handler knows whether anyone will observe
    the cancellation.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._signum: int | None = None
        self._waiters = 0

    def cancel(self, signum: int | None = None) -> None:
        """Mark the token as cancelled.

        Parameters
        ----------
        signum : int | None
            Signal number that triggered cancellation, if any
        """
        with self._lock:
            if self._signum is None:
                self._signum = signum
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def signum(self) -> int | None:
        with self._lock:
            return self._signum

    @property
    def has_waiters(self) -> bool:
        with self._lock:
            return self._waiters > 0

    @contextmanager
    def waiting(self) -> Iterator[CancellationToken]:
        """Register a wait that honours cancellation for the block's duration."""
        with self._lock:
            self._waiters += 1
        try:
            yield self
        finally:
            with self._lock:
                self._waiters -= 1

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; return True if cancelled meanwhile."""
        return self._event.wait(timeout)

    def reset(self) -> None:
        with self._lock:
            self._signum = None
        self._event.clear()


_process_token = CancellationToken()


def get_cancellation_token() -> CancellationToken:
    """Return the process-wide cancellation token."""
    return _process_token


def setup_signal_handlers(token: CancellationToken | None = None) -> None:
    """Cancel ``token`` on SIGINT and SIGTERM.

    While a poller waits on the token, the first signal only cancels it and
    the poller unwinds, cleaning up what it started. Otherwise, and on any
    repeated signal, the handler raises ``OperationCancelledError`` in the
    main thread so the invocation stops where it is.
    """
    target = token or _process_token

    def handler(signum: int, frame: types.FrameType | None) -> None:
        name = signal.Signals(signum).name
        if target.has_waiters and not target.cancelled:
            logger.info("Received signal %s, cancelling", name)
            target.cancel(signum)
            return

        target.cancel(signum)
        raise OperationCancelledError(f"Interrupted by {name}")

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)
