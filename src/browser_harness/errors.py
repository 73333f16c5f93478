"""Exceptions raised by browser harness sessions and drivers."""

from __future__ import annotations


class HarnessError(Exception):
    """Base class for every error raised by the harness itself."""


class DriverNotFoundError(HarnessError):
    """Raised when a session asks for a driver name nobody registered."""


class DriverError(HarnessError):
    """Raised when the underlying backend fails to carry out a command."""


class UnsupportedOperationError(HarnessError):
    """Raised when a driver cannot support the requested capability."""


class ApplicationError(HarnessError):
    """Raised when the application under test reports a server-side failure."""

    def __init__(self, message: str, *, status_code: int | None = None, url: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class InvalidSelectorError(HarnessError):
    """Raised when a CSS or XPath expression cannot be evaluated."""


class NotFoundError(HarnessError):
    """Raised when no element matches a query before the wait expires."""


class AmbiguousMatchError(HarnessError):
    """Raised when a query requiring a single element matches several."""


class StaleElementError(HarnessError):
    """Raised when a node handle points at an element that no longer exists."""


class InvalidInteractionError(HarnessError):
    """Raised when an interaction does not apply to the targeted element."""


class ExpectationNotMet(HarnessError):
    """Raised by ``assert_*`` helpers when the page does not match."""


class WaitAbortedError(HarnessError):
    """Raised when a reset or navigation cancels an in-flight wait."""
