"""Custom exceptions for the cloudxfer launcher."""

from __future__ import annotations


class LauncherError(Exception):
    """Base exception for all launcher errors."""

    pass


class ConfigurationError(LauncherError):
    """Raised for bad flags or settings (output type, concurrency value, ...)."""

    pass


class EngineStartupError(LauncherError):
    """Raised when the transfer engine cannot be bootstrapped."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message)


class LifecycleError(LauncherError):
    """Raised when the lifecycle manager is used out of order.

    This signals a programming error in a command, not a user error.
    """

    pass


class InvalidVersionError(LauncherError, ValueError):
    """Raised when a version string is not ``major.minor.patch``."""

    def __init__(self, raw: str) -> None:
        self.raw = raw
        super().__init__(f"Invalid version string: {raw!r}")
