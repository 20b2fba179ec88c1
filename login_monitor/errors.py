from __future__ import annotations


class MonitorError(Exception):
    """Base class for every error raised by the login monitor."""


class ConfigLoadError(MonitorError):
    """The targets document is missing, unparseable or invalid. Fatal."""


class CheckError(MonitorError):
    """A classified failure of one login-check attempt."""

    kind = "CheckError"

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause

    def __str__(self) -> str:
        msg = super().__str__()
        if self.cause is not None:
            return f"{msg}: {type(self.cause).__name__}: {self.cause}"
        return msg


class BrowserLaunchError(CheckError):
    kind = "BrowserLaunchError"


class NavigationTimeout(CheckError):
    kind = "NavigationTimeout"


class FormInteractionError(CheckError):
    kind = "FormInteractionError"


class SelectorTimeout(CheckError):
    kind = "SelectorTimeout"


class UrlAssertionError(CheckError):
    kind = "UrlAssertionError"

    def __init__(self, expected: str, actual: str, *, cause: BaseException | None = None) -> None:
        super().__init__(f"Expected URL to be {expected}, but got {actual}", cause=cause)
        self.expected = expected
        self.actual = actual


class BrowserCloseFailure(CheckError):
    # Logged only; never becomes the outcome of an attempt.
    kind = "BrowserCloseFailure"
