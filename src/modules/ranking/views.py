"""Immutable snapshots of ranking rows handed to callers outside a session."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from src.database.models import Ranking


@dataclass(frozen=True)
class RankingView:
    user_id: str
    scope: str
    dish_id: str
    rank: int
    note: Optional[str]
    photo_refs: Tuple[str, ...]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    @classmethod
    def from_model(cls, ranking: Ranking) -> RankingView:
        return cls(
            user_id=ranking.user_id,
            scope=ranking.scope,
            dish_id=ranking.dish_id,
            rank=ranking.rank,
            note=ranking.note,
            photo_refs=tuple(ranking.photo_refs or ()),
            created_at=ranking.created_at,
            updated_at=ranking.updated_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dish_id": self.dish_id,
            "rank": self.rank,
            "note": self.note,
            "photo_refs": list(self.photo_refs),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class MutationResult:
    """
    Outcome of one upsert or removal.

    Attributes
    ----------
    rankings:
        The user's full list in the scope after the mutation, ordered by rank.
    history:
        History entries written by this mutation (empty for a no-op).
    affected_dish_ids:
        Dishes whose aggregate must be recomputed.
    """

    user_id: str
    scope: str
    rankings: List[RankingView]
    history: List[Any] = field(default_factory=list)
    affected_dish_ids: FrozenSet[str] = frozenset()

    @property
    def changed(self) -> bool:
        return bool(self.history)
