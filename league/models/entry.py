"""Tournament entry model - a player's participation and running scores."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import Computed, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from league.models.base import Base


class TournamentEntry(Base):
    """One player's entry in one tournament. Points, ranks and tiebreaker_diff are owned by the scoring engine."""

    __tablename__ = "tournament_entries"
    __table_args__ = (UniqueConstraint("tournament_id", "player_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tournament_id: Mapped[int] = mapped_column(ForeignKey("tournaments.id"), nullable=False, index=True)
    player_id: Mapped[int] = mapped_column(ForeignKey("players.id"), nullable=False)
    tiebreaker_goals: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # predicted total group goals
    group_stage_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    knockout_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Maintained by the database; never written by the engine
    total_points: Mapped[int] = mapped_column(
        Integer, Computed("group_stage_points + knockout_points", persisted=True)
    )
    tiebreaker_diff: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    group_stage_rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    overall_rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    tournament = relationship("Tournament", back_populates="entries")
    player = relationship("Player", back_populates="entries")
    group_predictions = relationship(
        "GroupPrediction", back_populates="entry", cascade="all, delete-orphan"
    )
    knockout_predictions = relationship(
        "KnockoutPrediction", back_populates="entry", cascade="all, delete-orphan"
    )
