"""
Error types raised by the GTM storage client.
"""
from typing import Optional


class StorageError(Exception):
    """Base storage error."""
    pass


class ConfigurationError(StorageError):
    """Client configuration is missing or invalid."""
    pass


class BuildError(StorageError):
    """Request could not be constructed from the given input (no network call made)."""
    pass


class TransportError(StorageError):
    """Network failure, timeout or cancellation before a response was interpreted."""

    def __init__(self, message: str, operation: Optional[str] = None):
        self.operation = operation
        super().__init__(message)


class OperationCancelled(TransportError):
    """Operation was cancelled or its deadline expired."""
    pass


class OperationError(StorageError):
    """Server answered with a status code outside the accepted set."""

    def __init__(self, status_code: int, server_message: str, operation: str):
        self.status_code = status_code
        self.server_message = server_message
        self.operation = operation
        super().__init__(
            f"failed to {operation}: {server_message} (status: {status_code})"
        )

    @property
    def retryable(self) -> bool:
        """5xx responses may succeed on a later attempt; 4xx will not."""
        return self.status_code >= 500


class DecodeError(StorageError):
    """Server reported success but the body could not be decoded."""
    pass
