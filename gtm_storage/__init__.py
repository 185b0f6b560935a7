"""Client package for the GTM object storage HTTP service."""

from .cancellation import CancellationToken
from .client import StorageClient
from .config import ClientConfig
from .errors import (
    StorageError,
    ConfigurationError,
    BuildError,
    TransportError,
    OperationCancelled,
    OperationError,
    DecodeError,
)
from .models import ObjectMetadata, UploadOutcome, ListingResult
from .response_interpreter import ObjectStream

__all__ = [
    "StorageClient",
    "ClientConfig",
    "CancellationToken",
    "ObjectStream",
    "ObjectMetadata",
    "UploadOutcome",
    "ListingResult",
    "StorageError",
    "ConfigurationError",
    "BuildError",
    "TransportError",
    "OperationCancelled",
    "OperationError",
    "DecodeError",
]
