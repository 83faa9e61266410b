"""
Exception classes and result types for digquest-sync.

This module defines all custom exceptions used throughout the package.
Each exception carries a human-readable message plus an optional details
dictionary, so failures can be logged with context and still shown to a
user as a single line.

Exception Hierarchy:
    DigQuestSyncError (base)
        ConfigError - Configuration file issues
        StorageError - Key-value store read/write issues
        CodecError - Entity JSON (de)serialization issues
        ApiError - DigQuest REST API issues
        ImageOptimizationError - Image decode/encode issues

Propagation:
    StorageError and CodecError are almost never raised to callers. The
    storage adapter and the codec absorb them and report them either through
    the log or through a StorageResult. ImageOptimizationError, ApiError and
    ConfigError are raised, since the caller has to decide what to do next.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar


T = TypeVar("T")


class DigQuestSyncError(Exception):
    """
    Base exception for all digquest-sync errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (key, kind, path).

    Example:
        try:
            optimizer.optimize(image)
        except DigQuestSyncError as e:
            logger.error(f"Operation failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description that will be shown to the user.
            details: Optional dictionary containing additional context about the error.
                     Common keys include:
                     - 'key': Storage key involved in the error
                     - 'kind': Entity kind ('find', 'location', 'post', 'event')
                     - 'original_error': The underlying exception if wrapping another error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(DigQuestSyncError):
    """
    Raised when there's an issue with the configuration file.

    This is a CRITICAL error that should stop program execution.

    Common causes:
        - digquest.yaml has invalid YAML syntax
        - A section is not a mapping
        - Invalid field values (e.g., quality outside 0..1)

    Example:
        raise ConfigError(
            "'optimizer.quality' must be a number between 0 and 1",
            details={'field': 'optimizer.quality', 'value': 4}
        )
    """
    pass


class StorageError(DigQuestSyncError):
    """
    Raised when the key-value store cannot read or write a key.

    Only store construction lets this escape. Inside get/set/remove the
    adapter catches it and either logs it or returns it in a StorageResult.

    Common causes:
        - Quota exceeded (value too large for the backend)
        - Storage disabled or database file unreadable
        - Disk full

    Attributes:
        operation: The adapter operation that failed ('read', 'write', 'delete').
        key: The storage key involved, if any.
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        operation: str | None = None,
        key: str | None = None
    ) -> None:
        super().__init__(message, details)
        self.operation = operation
        self.key = key


class CodecError(DigQuestSyncError):
    """
    Raised when stored JSON text cannot be decoded into entities.

    Never propagated past the codec. The codec logs it and returns the
    caller's fallback, or returns it inside a StorageResult.
    """
    pass


class ApiError(DigQuestSyncError):
    """
    Raised when the DigQuest REST API returns an unusable response.

    Attributes:
        status_code: HTTP status code, or None for transport failures.
        is_retryable: True for timeouts, connection errors and 5xx responses.

    Example:
        raise ApiError(
            "Failed to fetch finds: HTTP 503",
            details={'url': url},
            status_code=503,
            is_retryable=True
        )
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        status_code: int | None = None,
        is_retryable: bool = False
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code
        self.is_retryable = is_retryable


class ImageOptimizationError(DigQuestSyncError):
    """
    Raised when an image cannot be decoded or re-encoded before upload.

    This is the one failure of the sync layer that is always raised: the
    upload form decides whether to send the original file or ask the
    user to pick another image.

    Example:
        raise ImageOptimizationError(
            "Failed to load image 'find.heic': cannot identify image file",
            details={'file_name': 'find.heic'}
        )
    """
    pass


@dataclass(frozen=True)
class StorageResult(Generic[T]):
    """
    Outcome of a storage or decode operation.

    Distinguishes "nothing stored" (ok, value is None or empty) from
    "storage failed" (error is set).

    Attributes:
        value: The value read, or None.
        error: The StorageError or CodecError that occurred, if any.
    """
    value: T | None = None
    error: DigQuestSyncError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap_or(self, default: T) -> T:
        """Return the value, or default when the operation failed or found nothing."""
        if self.error is not None or self.value is None:
            return default
        return self.value
