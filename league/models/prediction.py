"""Group and knockout prediction models."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from league.models.base import Base


class GroupPrediction(Base):
    """Entry's predicted 1st/2nd/3rd for one group."""

    __tablename__ = "group_predictions"
    __table_args__ = (UniqueConstraint("entry_id", "group_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entry_id: Mapped[int] = mapped_column(ForeignKey("tournament_entries.id"), nullable=False, index=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("groups.id"), nullable=False)
    predicted_1st: Mapped[Optional[int]] = mapped_column(ForeignKey("teams.id"), nullable=True)
    predicted_2nd: Mapped[Optional[int]] = mapped_column(ForeignKey("teams.id"), nullable=True)
    predicted_3rd: Mapped[Optional[int]] = mapped_column(ForeignKey("teams.id"), nullable=True)
    points_earned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    entry = relationship("TournamentEntry", back_populates="group_predictions")


class KnockoutPrediction(Base):
    """Entry's predicted winner of one knockout match."""

    __tablename__ = "knockout_predictions"
    __table_args__ = (UniqueConstraint("entry_id", "match_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entry_id: Mapped[int] = mapped_column(ForeignKey("tournament_entries.id"), nullable=False, index=True)
    match_id: Mapped[int] = mapped_column(ForeignKey("knockout_matches.id"), nullable=False)
    predicted_winner_id: Mapped[Optional[int]] = mapped_column(ForeignKey("teams.id"), nullable=True)
    is_correct: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)  # None until the match is decided
    points_earned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    entry = relationship("TournamentEntry", back_populates="knockout_predictions")
