"""
Database subsystem for the ranking core.

Provides the async SQLAlchemy engine, session management and the ORM base
classes and mixins used by model definitions.
"""

from src.core.database.base import (
    Base,
    IdMixin,
    TimestampMixin,
    utc_now,
)
from src.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    # ORM Base & Mixins
    "Base",
    "IdMixin",
    "TimestampMixin",
    "utc_now",
    # Main service
    "DatabaseService",
    # Exceptions
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
]
