"""
Core utilities and configuration for the card price sync service.

Modules:
    config: Application configuration and environment variable management
    database: Database engine, session factory and connection check
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import FeedFormatError, UpsertError
    from core.logging import setup_logging

Example:
    logger = setup_logging()

    async with async_session_maker() as session:
        ...
"""

__all__ = [
    "settings",
    "async_session_maker",
    "setup_logging",
    # Exceptions
    "ETLException",
    "ExtractionError",
    "DownloadError",
    "FeedFormatError",
    "TransformationError",
    "ValidationError",
    "PriceSchemaError",
    "SortError",
    "MergeError",
    "UnsortedInputError",
    "LoadError",
    "DatabaseError",
    "UpsertError",
    "EnrichmentError",
    "RetryableError",
    "NonRetryableError",
    "NetworkError",
    "DatabaseConnectionError",
    "DataFormatError",
]
