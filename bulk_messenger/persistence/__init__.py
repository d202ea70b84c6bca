"""Persistence layer for bulk jobs using SQLAlchemy.

Public API:
    # Database initialization and session management
    - init_database(database_url: str) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None
    - get_engine() -> Engine

    # Repository classes (caller-owned session)
    - JobRepository: jobs, status transitions and progress checkpoints
    - NotificationRepository: idempotent notification tracking
    - TemplateRepository: owner message templates
    - GatewayInstanceRepository: owner gateway instances

    # Facade (one committed session per call)
    - JobStore

Example usage:
    >>> from bulk_messenger.persistence import init_database, JobStore
    >>> init_database("sqlite:///./data/bulk_messenger.db")
    >>> JobStore().get_status("4f1c...")
"""

# Database initialization and session management
from .database import close_database, get_engine, get_session, init_database

# Exceptions
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
)

# Repository classes
from .repositories import (
    GatewayInstanceRepository,
    JobRepository,
    NotificationRepository,
    TemplateRepository,
)
from .store import JobStore

__all__ = [
    # Database functions
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    # Repositories
    "JobRepository",
    "NotificationRepository",
    "TemplateRepository",
    "GatewayInstanceRepository",
    "JobStore",
    # Exceptions
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
]
