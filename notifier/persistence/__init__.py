"""Persistence layer for jobs, batches, and dead-letter entries.

This module provides the public API for database operations including:
- Database initialization and connection management
- Repository classes for jobs, batches, and the dead-letter list
- Custom exceptions for error handling

Public API:
    # Database initialization and session management
    - Database(database_url).init()
    - Database.session() -> ContextManager[Session]
    - Database.close()

    # Repository classes
    - JobRepository: jobs by id, batch, session; orphan lookup
    - BatchRepository: batches by id, session, creator; aggregate writes
    - DeadLetterRepository: append-only failure audit list

    # Exceptions
    - PersistenceError: Base exception for all persistence errors
    - DatabaseConnectionError: Database connection/initialization failures
    - RecordNotFoundError: Required record not found
    - DataIntegrityError: Constraint violations

Example usage:
    >>> from notifier.persistence import Database, BatchRepository
    >>>
    >>> database = Database("sqlite:///./data/notifier.db").init()
    >>> with database.session() as session:
    ...     batch = BatchRepository(session).get("5d2bd1a4-...")
"""

from .database import Database

from .repositories import BatchRepository, DeadLetterRepository, JobRepository

from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
)

__all__ = [
    "Database",
    # Repositories
    "JobRepository",
    "BatchRepository",
    "DeadLetterRepository",
    # Exceptions
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
]
