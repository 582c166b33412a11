"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class WorkshopEmuError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(WorkshopEmuError):
    """Raised for issues related to configuration loading or validation."""


class InvalidItemIdError(WorkshopEmuError):
    """Raised when an item reference cannot be turned into a numeric item ID."""


class InstallError(WorkshopEmuError):
    """Base class for failures of a single install pipeline run."""


class SubmitError(InstallError):
    """Raised when the download job could not be submitted or its UUID is missing."""


class PollParseError(InstallError):
    """
    Raised when a status response cannot be understood.

    This one is transient: the poll loop logs it and keeps going.
    """


class StallTimeout(InstallError):
    """Raised when the remote job shows no status or progress change for too long."""


class JobFailedError(InstallError):
    """Raised when the remote service reports the job itself as failed."""


class FetchError(InstallError):
    """Raised when streaming the prepared archive fails."""


class ExtractionError(InstallError):
    """Raised when a downloaded archive cannot be unpacked into its destination."""


class InstallCancelledError(InstallError):
    """Raised when an install is abandoned because the item was unsubscribed."""


class CleanupError(WorkshopEmuError):
    """Raised by best-effort cleanup helpers. Only ever logged."""
