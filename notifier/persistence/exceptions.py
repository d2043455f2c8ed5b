"""Persistence layer exceptions.

This module defines custom exceptions for database and persistence operations.
All persistence exceptions inherit from PersistenceError for easy catching.
"""

from notifier.domain.exceptions import NotFoundError, NotifierError


class PersistenceError(NotifierError):
    """Base exception for all persistence layer errors.

    All database-related exceptions should inherit from this class.
    This allows callers to catch all persistence errors with a single except clause.
    """

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when database connection or initialization fails.

    Examples:
    - Invalid database URL format
    - Database file not accessible
    - Database driver not available
    """

    pass


class RecordNotFoundError(PersistenceError, NotFoundError):
    """Raised when a required job or batch record is not found.

    For optional lookups, methods return None instead of raising this.
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised when a database constraint violation occurs.

    Examples:
    - Primary key violation
    - Foreign key violation (job referencing a deleted batch)
    """

    pass
