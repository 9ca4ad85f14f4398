"""
Error handling and recovery service for the agt-20 indexer.

This service provides strategies for handling the errors that may occur
during a run: feed fetch failures, database errors and lock contention.
"""

from typing import Any, Dict

import structlog
from sqlalchemy.exc import SQLAlchemyError

from agt20.config import settings
from agt20.utils.exceptions import FeedFetchError, IndexerBusyError


class ErrorHandler:
    """Handle indexing errors and recovery"""

    def __init__(self):
        """Initialize the error handler"""
        self.logger = structlog.get_logger()

    def handle_run_error(self, error: Exception, context: Dict[str, Any]) -> bool:
        """
        Log a failed run and decide whether the continuous loop should keep going.

        Args:
            error: The exception that occurred
            context: Additional context about the error

        Returns:
            True if the run should be retried, False otherwise
        """
        if isinstance(error, IndexerBusyError):
            self.logger.info("Indexer busy, skipping run", error=str(error), context=context)
            return True
        if isinstance(error, FeedFetchError):
            return self.handle_fetch_error(error, context)
        if isinstance(error, SQLAlchemyError):
            return self.handle_database_error(error, context)

        self.logger.error("Indexer run failed", error=str(error), context=context, exc_info=True)
        return not settings.STOP_ON_ERROR

    def handle_fetch_error(self, error: FeedFetchError, context: Dict[str, Any]) -> bool:
        """
        Handle Moltbook feed errors.

        Returns:
            True if the operation should be retried, False otherwise
        """
        self.logger.error(
            "Feed fetch error occurred",
            error=str(error),
            status_code=error.status_code,
            context=context,
        )
        return True

    def handle_database_error(self, error: Exception, context: Dict[str, Any]) -> bool:
        """
        Handle database errors.

        Returns:
            True if the operation should be retried, False otherwise
        """
        self.logger.error("Database error occurred", error=str(error), context=context)
        return not settings.STOP_ON_ERROR

    def should_retry(self, attempt: int) -> bool:
        """
        Determine if an operation should be retried.

        Args:
            attempt: The current retry attempt number

        Returns:
            True if the operation should be retried, False otherwise
        """
        return attempt < settings.MAX_RETRIES

    def get_retry_delay(self, attempt: int) -> int:
        """
        Calculate the retry delay with exponential backoff.

        Args:
            attempt: The current retry attempt number

        Returns:
            The delay in seconds
        """
        delay = settings.RETRY_DELAY * (2 ** (attempt - 1))
        self.logger.info("Retrying operation", attempt=attempt, delay=delay)
        return delay
