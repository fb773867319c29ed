"""
Custom exceptions for the price sync service with structured error context.

Each exception carries a context dictionary so that failures can be logged
and written to the sync log with enough detail to diagnose them later.

Exception Hierarchy:
    PriceSyncException (base)
    ├── ExtractionError
    │   └── MarketAPIError
    ├── TransformationError
    │   ├── ValidationError
    │   └── DataFormatError
    ├── LoadError
    │   ├── DatabaseError
    │   └── UpsertError
    ├── SyncStateError
    ├── NoDataFoundError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class PriceSyncException(Exception):
    """
    Base exception for all sync-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (country, date range, etc.)
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
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        context = {k: v for k, v in self.context.items() if k != "error_timestamp"}
        if context:
            context_str = ", ".join(f"{k}={v}" for k, v in context.items())
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

class ExtractionError(PriceSyncException):
    """Base exception for upstream data extraction failures."""
    pass


class MarketAPIError(ExtractionError):
    """
    Exception raised when the market price API call fails.

    Context should include:
        - api_url: The API endpoint that failed
        - status_code: HTTP status code (if applicable)
        - window_start / window_end: Requested UTC window
    """
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(PriceSyncException):
    """Base exception for data transformation failures."""
    pass


class ValidationError(TransformationError):
    """
    Exception raised when input validation fails before any I/O.

    Context should include:
        - field_name: Name of the parameter that failed validation
        - field_value: Value that failed validation
    """
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(PriceSyncException):
    """Base exception for data loading failures."""
    pass


class DatabaseError(LoadError):
    """
    Exception raised when database operations fail.

    Context should include:
        - operation: Type of database operation (SELECT, UPSERT, DELETE)
        - table_name: Name of the table
    """
    pass


class UpsertError(LoadError):
    """
    Exception raised when a price batch upsert fails and is rolled back.

    Context should include:
        - country: Country code of the batch
        - batch_size: Number of points in the batch
    """
    pass


# ============================================================================
# Sync State Errors
# ============================================================================

class SyncStateError(PriceSyncException):
    """Exception raised when persisted sync state (settings, log) cannot be read or written."""
    pass


class NoDataFoundError(PriceSyncException):
    """Raised when a query finds no stored prices for the requested country or period."""
    pass


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(PriceSyncException):
    """
    Mixin for errors that may succeed when retried later.

    Use this for transient errors like:
    - Network timeouts
    - Rate limiting (HTTP 429)
    - Service unavailable (HTTP 5xx)
    - Temporary database connection issues
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


class NonRetryableError(PriceSyncException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Authentication failures (HTTP 401, 403)
    - Invalid payload format
    - Resource not found (HTTP 404)
    """
    pass


# ============================================================================
# Specific Retryable Errors
# ============================================================================

class NetworkError(RetryableError, MarketAPIError):
    """Network-related errors (timeouts, connection failures, 5xx)."""
    pass


class RateLimitError(RetryableError, MarketAPIError):
    """Rate limiting errors (HTTP 429)."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[int] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after  # Seconds to wait before retry
        if retry_after:
            self.context["retry_after"] = retry_after


class DatabaseConnectionError(RetryableError, DatabaseError):
    """Database connection errors."""
    pass


# ============================================================================
# Specific Non-Retryable Errors
# ============================================================================

class AuthenticationError(NonRetryableError, MarketAPIError):
    """Authentication failures (HTTP 401, 403)."""
    pass


class DataFormatError(NonRetryableError, TransformationError):
    """Upstream payload is not in the expected shape."""
    pass


class ResourceNotFoundError(NonRetryableError, MarketAPIError):
    """Resource not found errors (HTTP 404)."""
    pass
