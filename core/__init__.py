"""
Core utilities and configuration for the electricity price sync service.

Modules:
    config: Application configuration and environment variable management
    database: Async engine, session factory and dialect-aware upsert helper
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration
    timeutils: Business-timezone day bounds and provider windowing

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import MarketAPIError, NetworkError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "async_session_maker",
    "setup_logging",
    # Exceptions
    "PriceSyncException",
    "ExtractionError",
    "MarketAPIError",
    "TransformationError",
    "ValidationError",
    "DataFormatError",
    "LoadError",
    "DatabaseError",
    "UpsertError",
    "SyncStateError",
    "NoDataFoundError",
    "RetryableError",
    "NonRetryableError",
    "NetworkError",
    "RateLimitError",
    "DatabaseConnectionError",
    "AuthenticationError",
    "ResourceNotFoundError",
]
