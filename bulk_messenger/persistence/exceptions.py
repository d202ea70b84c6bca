"""Persistence layer exceptions.

All persistence exceptions inherit from PersistenceError. The job runner
treats any of them escaping the loop as job-fatal.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when the database cannot be initialized or reached.

    Examples:
    - Empty or malformed database URL
    - Database file not writable
    - get_session() called before init_database()
    """

    pass


class RecordNotFoundError(PersistenceError):
    """Raised when an update targets a record that does not exist.

    Lookups return None instead of raising.
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised on constraint violations.

    The one the service relies on is the partial unique index allowing a
    single active job per owner.
    """

    pass
