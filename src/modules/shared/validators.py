"""
Ranking Domain Validators

Purpose
-------
Input validation for ranking requests. Validators raise structured domain
exceptions on failure and return normalized values on success, so services
can validate and normalize in one call.

Design Notes
------------
Validators:
- Accept data to validate as parameters
- Raise specific domain exceptions on failure
- Never touch the database

Usage
-----
    from src.modules.shared.validators import validate_rank_window

    validate_rank_window(requested_rank=7, max_rank=5)
    # Raises: OutOfRangeRankError
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence

from .exceptions import InvalidScopeError, OutOfRangeRankError, ValidationError

IDENTIFIER_MAX_LENGTH = 128
PHOTO_REF_MAX_LENGTH = 2048


def validate_identifier(field: str, value: Any) -> str:
    """
    Validate an opaque user or dish identifier.

    Raises:
        ValidationError: If value is not a non-empty string of at most 128 chars
    """
    if not isinstance(value, str):
        raise ValidationError(field, f"{field} must be a string")

    value = value.strip()
    if not value:
        raise ValidationError(field, f"{field} must not be empty")
    if len(value) > IDENTIFIER_MAX_LENGTH:
        raise ValidationError(
            field, f"{field} must be at most {IDENTIFIER_MAX_LENGTH} characters"
        )
    return value


def validate_scope(scope: Any, allowed: Sequence[str]) -> str:
    """
    Validate that a scope tag belongs to the configured enumeration.

    Raises:
        InvalidScopeError: If scope is not one of ``allowed``
    """
    if not isinstance(scope, str) or scope not in allowed:
        raise InvalidScopeError(scope, allowed)
    return scope


def validate_rank_value(rank: Any) -> int:
    """
    Validate the type of a requested rank.

    Range checks are separate (see validate_rank_window) because the window
    depends on the user's current list.

    Raises:
        ValidationError: If rank is not an integer (bools are rejected too)
    """
    if isinstance(rank, bool) or not isinstance(rank, int):
        raise ValidationError("rank", f"rank must be an integer, got {rank!r}")
    return rank


def validate_rank_window(requested_rank: int, max_rank: int, min_rank: int = 1) -> None:
    """
    Raises:
        OutOfRangeRankError: If requested_rank is outside [min_rank, max_rank]
    """
    if not (min_rank <= requested_rank <= max_rank):
        raise OutOfRangeRankError(requested_rank, min_rank, max_rank)


def validate_note(note: Any, max_length: int) -> Optional[str]:
    """
    Validate an optional free-text note.

    Raises:
        ValidationError: If note is not a string or exceeds max_length
    """
    if note is None:
        return None
    if not isinstance(note, str):
        raise ValidationError("note", "note must be a string")
    if len(note) > max_length:
        raise ValidationError(
            "note", f"note must be at most {max_length} characters, got {len(note)}"
        )
    return note


def validate_photo_refs(photo_refs: Any, max_count: int) -> Optional[List[str]]:
    """
    Validate blob-store photo references attached to a ranking.

    ``None`` means "leave unchanged"; an empty list clears the photos.

    Raises:
        ValidationError: If refs are not a list of non-empty strings or too many
    """
    if photo_refs is None:
        return None
    if isinstance(photo_refs, (str, bytes)) or not isinstance(photo_refs, (list, tuple)):
        raise ValidationError("photo_refs", "photo_refs must be a list of strings")
    if len(photo_refs) > max_count:
        raise ValidationError(
            "photo_refs",
            f"at most {max_count} photo references are allowed, got {len(photo_refs)}",
        )

    refs: List[str] = []
    for ref in photo_refs:
        if not isinstance(ref, str) or not ref.strip():
            raise ValidationError("photo_refs", "photo references must be non-empty strings")
        if len(ref) > PHOTO_REF_MAX_LENGTH:
            raise ValidationError(
                "photo_refs",
                f"photo references must be at most {PHOTO_REF_MAX_LENGTH} characters",
            )
        refs.append(ref.strip())
    return refs
