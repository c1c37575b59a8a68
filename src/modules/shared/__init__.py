"""
Ranking Shared Module

Purpose
-------
Domain-level foundations shared by the ranking, history, aggregation and
query modules:
- Domain exceptions and error handling helpers
- Base service and repository patterns
- Input validators

Usage
-----
    from src.modules.shared import (
        BaseService,
        BaseRepository,
        OutOfRangeRankError,
        validate_scope,
    )
"""

from __future__ import annotations

from .base_repository import BaseRepository
from .base_service import BaseService
from .exceptions import (
    ConcurrentMutationConflictError,
    ErrorSeverity,
    InvalidScopeError,
    NotFoundError,
    OutOfRangeRankError,
    RankingDomainException,
    RankingNotFoundError,
    ValidationError,
    get_error_severity,
    is_transient_error,
    should_alert,
)
from .validators import (
    validate_identifier,
    validate_note,
    validate_photo_refs,
    validate_rank_value,
    validate_rank_window,
    validate_scope,
)

__all__ = [
    # Base patterns
    "BaseService",
    "BaseRepository",
    # Exceptions
    "RankingDomainException",
    "ErrorSeverity",
    "ValidationError",
    "OutOfRangeRankError",
    "NotFoundError",
    "RankingNotFoundError",
    "InvalidScopeError",
    "ConcurrentMutationConflictError",
    "is_transient_error",
    "get_error_severity",
    "should_alert",
    # Validators
    "validate_identifier",
    "validate_scope",
    "validate_rank_value",
    "validate_rank_window",
    "validate_note",
    "validate_photo_refs",
]
