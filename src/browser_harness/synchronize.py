"""Bounded polling used by sessions to wait for asynchronous pages."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Optional, TypeVar

from .errors import NotFoundError, StaleElementError, WaitAbortedError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS: tuple[type[Exception], ...] = (NotFoundError, StaleElementError)


class Waiter:
    """Poll a probe until it succeeds, the timeout expires or the session moves on.

    A static (non-live) driver holds an immutable snapshot, so one evaluation
    already decides the outcome and the waiter does not sleep. ``epoch`` is a
    callable returning the session's navigation counter; if it changes between
    polls the wait aborts with :class:`WaitAbortedError` instead of answering
    from a page the caller no longer looks at.
    """

    def __init__(
        self,
        timeout: float,
        interval: float,
        *,
        live: bool = True,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.timeout = timeout if live else 0.0
        self.interval = interval
        self._clock = clock
        self._sleep = sleep

    def until(self, probe: Callable[[], T], *, epoch: Optional[Callable[[], int]] = None) -> T:
        """Return the first successful result of ``probe``."""

        deadline = self._clock() + self.timeout
        started_in = epoch() if epoch else None
        attempts = 0
        while True:
            attempts += 1
            try:
                return probe()
            except RETRYABLE_ERRORS as exc:
                if self._clock() >= deadline:
                    LOGGER.debug("Giving up after %d attempts: %s", attempts, exc)
                    raise
                self._check_epoch(epoch, started_in)
                LOGGER.debug("Retrying after %s", exc)
            self._sleep(self.interval)
            self._check_epoch(epoch, started_in)

    def until_true(
        self,
        predicate: Callable[[], bool],
        *,
        epoch: Optional[Callable[[], int]] = None,
    ) -> bool:
        """Return True once ``predicate`` holds, False if it never does in time."""

        deadline = self._clock() + self.timeout
        started_in = epoch() if epoch else None
        while True:
            if predicate():
                return True
            if self._clock() >= deadline:
                return False
            self._sleep(self.interval)
            self._check_epoch(epoch, started_in)

    @staticmethod
    def _check_epoch(epoch: Optional[Callable[[], int]], started_in: Optional[int]) -> None:
        if epoch is not None and epoch() != started_in:
            raise WaitAbortedError("Session was reset or navigated while waiting")
