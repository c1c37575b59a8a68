"""
Core infrastructure layer for the ranking core.

Purpose
-------
Provide a single import surface for the infrastructure subsystems:

- Configuration (Config)
- Database subsystem (DatabaseService, ORM base)
- Redis subsystem (RedisService for distributed locking)
- Logging (structured logging, logger factory)

Design Decisions
----------------
- This module is intentionally thin: no logic, no configuration, no I/O.
- Locking, events and the service container import domain exceptions, so
  they are imported from their own packages rather than re-exported here.
"""

from __future__ import annotations

from src.core.config import Config, ConfigError
from src.core.database import DatabaseService
from src.core.logging import get_logger, setup_logging
from src.core.redis import RedisService

__all__ = [
    # Configuration
    "Config",
    "ConfigError",
    # Database
    "DatabaseService",
    # Redis
    "RedisService",
    # Logging
    "setup_logging",
    "get_logger",
]
