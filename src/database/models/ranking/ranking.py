"""
Ranking: one user's position for one dish within one scope.
Schema only; rank shifting lives in RankingService.
"""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import JSON, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin, TimestampMixin


class Ranking(Base, IdMixin, TimestampMixin):
    """
    Personal rank of a dish.

    For a fixed (user_id, scope) the ranks form the dense sequence 1..N.
    Both uniqueness constraints back that invariant at the database level;
    RankingService moves rows through temporary negative ranks so neither
    is violated mid-flush.
    """

    __tablename__ = "dish_rankings"
    __table_args__ = (
        UniqueConstraint("user_id", "scope", "dish_id", name="uq_dish_rankings_user_dish"),
        UniqueConstraint("user_id", "scope", "rank", name="uq_dish_rankings_user_rank"),
        Index("ix_dish_rankings_scope_dish", "scope", "dish_id"),
    )

    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    scope: Mapped[str] = mapped_column(String(64), nullable=False)
    dish_id: Mapped[str] = mapped_column(String(128), nullable=False)

    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Blob-store references only, never image bytes
    photo_refs: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    def __repr__(self) -> str:
        return (
            f"<Ranking user={self.user_id!r} scope={self.scope!r} "
            f"dish={self.dish_id!r} rank={self.rank}>"
        )
