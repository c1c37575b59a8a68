"""
Domain exceptions raised by the ranking services.

Every error derives from ``RankingDomainException`` and carries a stable
``error_code``, structured ``details``, a logging ``severity`` and an
``is_retryable`` hint. Services never retry on their own; request handlers
turn these into error envelopes via ``to_dict()``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional, Sequence


class ErrorSeverity(Enum):
    DEBUG = "debug"
    INFO = "info"  # caller mistakes
    WARNING = "warning"  # contention
    ERROR = "error"
    CRITICAL = "critical"


class RankingDomainException(Exception):
    """
    Base for all ranking errors.

    Subclasses set ``DEFAULT_SEVERITY`` / ``DEFAULT_RETRYABLE``; either can be
    overridden per instance.

    >>> raise RankingDomainException("Ranking rejected", {"reason": "scope closed"})
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message = message
        self.details: Dict[str, Any] = details or {}
        self.severity = severity or self.DEFAULT_SEVERITY
        self.is_retryable = self.DEFAULT_RETRYABLE if is_retryable is None else is_retryable
        self.error_code = error_code or type(self).__name__
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        suffix = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{suffix}"


class ValidationError(RankingDomainException):
    """Malformed input: blank identifier, non-positive rank, overlong note..."""

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )


class OutOfRangeRankError(RankingDomainException):
    """
    Requested rank outside the window: [1, N+1] to insert, [1, N] to move.
    Ranks are rejected, never clamped.
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, requested_rank: int, min_rank: int, max_rank: int) -> None:
        self.requested_rank = requested_rank
        self.min_rank = min_rank
        self.max_rank = max_rank
        super().__init__(
            f"Rank {requested_rank} is out of range [{min_rank}, {max_rank}]",
            details={
                "requested_rank": requested_rank,
                "min_rank": min_rank,
                "max_rank": max_rank,
            },
            error_code="RANK_OUT_OF_RANGE",
        )


class NotFoundError(RankingDomainException):
    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier
        message = f"{resource_type} not found"
        if identifier is not None:
            message = f"{message}: {identifier}"
        super().__init__(
            message,
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class RankingNotFoundError(NotFoundError):
    """The user has no ranking for the dish in this scope."""

    def __init__(self, user_id: str, scope: str, dish_id: str) -> None:
        self.user_id = user_id
        self.scope = scope
        self.dish_id = dish_id
        super().__init__("Ranking", f"{user_id}/{scope}/{dish_id}")
        self.details.update(user_id=user_id, scope=scope, dish_id=dish_id)


class InvalidScopeError(RankingDomainException):
    """Scope tag outside the configured RANKING_SCOPES."""

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, scope: Any, allowed: Sequence[str]) -> None:
        self.scope = scope
        self.allowed = list(allowed)
        super().__init__(
            f"Unknown ranking scope {scope!r}",
            details={"scope": scope, "allowed": self.allowed},
            error_code="INVALID_SCOPE",
        )


class ConcurrentMutationConflictError(RankingDomainException):
    """
    A per-key lock (user+scope, or dish+scope for recomputes) stayed held
    past the wait timeout. Nothing was changed; the request can be retried.
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(self, lock_key: str, waited_seconds: float) -> None:
        self.lock_key = lock_key
        self.waited_seconds = waited_seconds
        super().__init__(
            f"Concurrent mutation in progress for {lock_key}; retry later",
            details={
                "lock_key": lock_key,
                "waited_seconds": round(waited_seconds, 3),
                "retry_after": 0.1,
            },
            error_code="CONCURRENT_MUTATION_CONFLICT",
        )


def is_transient_error(exc: Exception) -> bool:
    return isinstance(exc, RankingDomainException) and exc.is_retryable


def get_error_severity(exc: Exception) -> ErrorSeverity:
    """Severity for logging; anything outside the hierarchy is ERROR."""
    if isinstance(exc, RankingDomainException):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: Exception) -> bool:
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
