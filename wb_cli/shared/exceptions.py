"""Project-wide custom exceptions."""

from __future__ import annotations


class WorkbenchError(Exception):
    """Base exception for the SQL workbench."""


class ConfigurationError(WorkbenchError):
    """Raised when configuration loading or validation fails."""


class IdentifierError(WorkbenchError):
    """Raised when a table or column name fails the identifier-safety check."""


class DatabaseError(WorkbenchError):
    """Raised for database-related issues."""


class QueryError(DatabaseError):
    """Raised when the engine rejects or fails a statement.

    The message carries the engine's own text so callers can surface it verbatim.
    """


class LibraryError(DatabaseError):
    """Raised when the statement library cannot be read or updated."""
