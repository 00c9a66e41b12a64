"""Exceptions raised by the cloud service client."""

from typing import Optional


class CloudServiceError(Exception):
    """Base class for every error raised by this package."""
    pass


class InvalidArgumentError(CloudServiceError, ValueError):
    """Raised when a client is constructed with unusable settings."""
    pass


class ManagementAPIError(CloudServiceError):
    """Raised when the management endpoint answers with a non-success status."""

    def __init__(self, status_code: int, message: str, code: Optional[str] = None):
        self.status_code = status_code
        self.code = code
        self.message = message
        detail = f"{code}: {message}" if code else message
        super().__init__(f"Management API returned HTTP {status_code}: {detail}")


class WaitError(CloudServiceError):
    """Base class for failed waits."""

    def __init__(self, message: str, instance_name: Optional[str] = None, polls: int = 0):
        super().__init__(message)
        self.instance_name = instance_name
        self.polls = polls


class WaitTimeoutError(WaitError, TimeoutError):
    """The awaited condition never held within the retry budget."""
    pass


class InstanceNotFoundError(WaitError, LookupError):
    """The awaited instance, or the whole roster, was missing from a snapshot."""
    pass


class WaitCancelledError(WaitError):
    """The wait was cancelled before the condition held."""
    pass
