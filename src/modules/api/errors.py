"""
Error envelope formatting for request handlers.

Maps exceptions onto HTTP-style statuses and the ``{"ok": False, "error": ...}``
shape. Domain exceptions expose their ``to_dict()``; anything else is reported
with a generic message so internals never leak to callers.
"""

from __future__ import annotations

from typing import Any, Dict, List, Tuple, Type

from src.modules.shared.exceptions import (
    ConcurrentMutationConflictError,
    ErrorSeverity,
    InvalidScopeError,
    NotFoundError,
    OutOfRangeRankError,
    RankingDomainException,
    ValidationError,
)

# First match wins; subclasses before their bases.
STATUS_BY_EXCEPTION: List[Tuple[Type[RankingDomainException], int]] = [
    (ValidationError, 400),
    (OutOfRangeRankError, 400),
    (InvalidScopeError, 400),
    (NotFoundError, 404),
    (ConcurrentMutationConflictError, 409),
]

INTERNAL_ERROR_MESSAGE = "An unexpected error occurred."


def status_for(error: Exception) -> int:
    for exc_type, status in STATUS_BY_EXCEPTION:
        if isinstance(error, exc_type):
            return status
    return 500


def format_error(error: Exception) -> Dict[str, Any]:
    """Build the error envelope for ``error``."""
    status = status_for(error)

    if isinstance(error, RankingDomainException) and status != 500:
        body = error.to_dict()
    else:
        body = {
            "error_type": "InternalError",
            "error_code": "INTERNAL_ERROR",
            "message": INTERNAL_ERROR_MESSAGE,
            "details": {},
            "severity": ErrorSeverity.ERROR.value,
            "is_retryable": False,
        }

    body["status"] = status
    return {"ok": False, "error": body}
