"""Bounded, cancellable fixed-interval polling."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from devpod_aws.core.signals import CancellationToken
from devpod_aws.providers.exceptions import OperationCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PollTimeoutError(Exception):
    """The poll deadline passed before the check succeeded.

    Attributes
    ----------
    attempts : int
        Number of times the check was invoked
    """

    def __init__(self, timeout: float, attempts: int) -> None:
        super().__init__(f"Condition not met after {attempts} attempts in {timeout:g}s")
        self.timeout = timeout
        self.attempts = attempts


def poll_until(
    check: Callable[[], T | None],
    *,
    interval: float,
    timeout: float,
    initial_delay: float = 0.0,
    token: CancellationToken | None = None,
    clock: Callable[[], float] = time.monotonic,
    description: str = "condition",
) -> T:
    """Call ``check`` until it returns a non-None value.

    The first call happens after ``initial_delay``, then every ``interval``
    seconds. Sleeping is done on the cancellation token so a signal aborts the
    wait immediately.

    Parameters
    ----------
    check : Callable[[], T | None]
        Status probe; a non-None result ends polling. Exceptions propagate.
    interval : float
        Seconds between calls
    timeout : float
        Upper bound in seconds measured from the start of polling
    initial_delay : float
        Seconds to wait before the first call
    token : CancellationToken | None
        Cancellation source; a fresh, never-cancelled token if None
    clock : Callable[[], float]
        Monotonic clock, injectable for tests
    description : str
        Used in log messages

    Returns
    -------
    T
        The first non-None value returned by ``check``

    Raises
    ------
    PollTimeoutError
        If the deadline passes first
    OperationCancelledError
        If the token is cancelled while waiting
    """
    token = token or CancellationToken()
    deadline = clock() + timeout
    attempts = 0

    with token.waiting():
        if initial_delay > 0 and token.wait(initial_delay):
            raise OperationCancelledError(f"Cancelled while waiting for {description}")

        while True:
            if token.cancelled:
                raise OperationCancelledError(f"Cancelled while waiting for {description}")

            attempts += 1
            result = check()
            if result is not None:
                logger.debug("%s met after %d attempts", description, attempts)
                return result

            remaining = deadline - clock()
            if remaining <= 0:
                raise PollTimeoutError(timeout, attempts)

            logger.info("Waiting for %s", description)
            if token.wait(min(interval, remaining)):
                raise OperationCancelledError(f"Cancelled while waiting for {description}")
