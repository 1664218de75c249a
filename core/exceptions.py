"""
Custom exceptions for the card price sync pipeline with structured error context.

Every pipeline stage raises one of these so the runner can record the failure
on the sync run and decide whether the run is aborted.

Exception Hierarchy:
    ETLException (base)
    ├── ExtractionError
    │   ├── DownloadError
    │   └── FeedFormatError
    ├── TransformationError
    │   ├── ValidationError
    │   │   └── PriceSchemaError
    │   ├── SortError
    │   └── MergeError
    │       └── UnsortedInputError
    ├── LoadError
    │   ├── DatabaseError
    │   └── UpsertError
    ├── EnrichmentError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime


class ETLException(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (stage, file, uuid, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(ETLException):
    """Base exception for feed download and decode failures."""
    pass


class DownloadError(ExtractionError):
    """
    Exception raised when a feed cannot be fetched to disk.

    Context should include:
        - url: The feed URL
        - status_code: HTTP status code (if applicable)
        - destination: Local path the feed was written to
    """
    pass


class FeedFormatError(ExtractionError):
    """
    Exception raised when the top-level structure of a feed cannot be decoded.

    Context should include:
        - file_path: Path to the feed file
        - entries_read: Entries decoded before the failure
    """
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(ETLException):
    """Base exception for filter, sort and merge failures."""
    pass


class ValidationError(TransformationError):
    """
    Exception raised when a record fails validation.

    Context should include:
        - uuid: Identifier of the record
        - field_name: Name of the field that failed validation
    """
    pass


class PriceSchemaError(ValidationError):
    """Raised when a raw price tree does not match vendor/type/finish/date shape."""
    pass


class SortError(TransformationError):
    """
    Exception raised when an NDJSON file cannot be sorted.

    Context should include:
        - input_path / output_path
        - strategy: in_memory or external
    """
    pass


class MergeError(TransformationError):
    """Base exception for merge-join failures."""
    pass


class UnsortedInputError(MergeError):
    """
    Raised when a merge-join input is not in ascending uuid order.

    Context should include:
        - file_path: The offending input
        - line_number: Line where the order broke
        - previous_key / current_key
    """
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(ETLException):
    """Base exception for data loading failures."""
    pass


class DatabaseError(LoadError):
    """
    Exception raised when database operations fail.

    Context should include:
        - operation: Type of database operation (SELECT, UPSERT, UPDATE)
        - table_name: Name of the table
    """
    pass


class UpsertError(LoadError):
    """
    Exception raised when an upsert operation fails.

    Context should include:
        - uuid / uuids: Identifiers being upserted
        - batch_size: Number of operations in the failed call
    """
    pass


# ============================================================================
# Enrichment Errors
# ============================================================================

class EnrichmentError(ETLException):
    """Exception raised when the image enrichment pass cannot proceed."""
    pass


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(ETLException):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Network timeouts
    - Rate limiting (HTTP 429)
    - Temporary database connection issues
    - Service unavailable (HTTP 503)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0
    ):
        super().__init__(message, context, original_exception)
        self.max_retries = max_retries
        self.retry_delay = retry_delay


class NonRetryableError(ETLException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Resource not found (HTTP 404)
    - Invalid data format
    """
    pass


# ============================================================================
# Specific Retryable Errors
# ============================================================================

class NetworkError(RetryableError, DownloadError):
    """Network-related errors that exhausted their retries."""
    pass


class DatabaseConnectionError(RetryableError, DatabaseError):
    """Database connection errors."""
    pass


# ============================================================================
# Specific Non-Retryable Errors
# ============================================================================

class DataFormatError(NonRetryableError, TransformationError):
    """Data format errors that should not be retried."""
    pass
