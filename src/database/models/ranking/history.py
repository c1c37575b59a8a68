"""
RankHistoryEntry: append-only rank transition log (immutable).
Pure schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin, UTCDateTime, utc_now


class RankHistoryEntry(Base, IdMixin):
    """
    One rank transition of one dish in one user's list.

    Schema-only:
    - event: entered | moved | shifted | note_updated | removed
    - rank: resulting rank, NULL only for ``removed``
    - previous_rank: prior rank, NULL only for ``entered``
    - id doubles as a tie-break for entries recorded in the same instant
    """

    __tablename__ = "rank_history"
    __table_args__ = (
        Index("ix_rank_history_user_scope_dish", "user_id", "scope", "dish_id", "recorded_at"),
        Index("ix_rank_history_user_scope", "user_id", "scope", "id"),
    )

    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    scope: Mapped[str] = mapped_column(String(64), nullable=False)
    dish_id: Mapped[str] = mapped_column(String(128), nullable=False)

    event: Mapped[str] = mapped_column(String(16), nullable=False)
    rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    previous_rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    recorded_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utc_now,
    )

    def __repr__(self) -> str:
        return (
            f"<RankHistoryEntry id={self.id} {self.event} dish={self.dish_id!r} "
            f"{self.previous_rank}->{self.rank}>"
        )
