"""
errors.py
----------
Exceptions raised by the ingest pipeline.

Fetch errors carry a user_message that can be shown as-is in a banner or
returned from the HTTP API.
"""


class ABCEatsError(Exception):
    """Base class for all errors raised by this project."""


class FetchError(ABCEatsError):
    """The remote inspection data could not be retrieved."""

    def __init__(self, message, user_message=None):
        super().__init__(message)
        self.user_message = user_message or message


class NetworkError(FetchError):
    """Timeout, lost connection or a server-side HTTP error."""


class DecodeError(FetchError):
    """The response body was not the expected array of inspection rows."""


class StorageError(ABCEatsError):
    """Reading or writing the local store failed."""


class RefreshInProgressError(ABCEatsError):
    """A full refresh is already running."""


class TaskExpiredError(ABCEatsError):
    """A refresh was abandoned because its cancellation token was set."""
