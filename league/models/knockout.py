"""Knockout bracket match model."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from league.models.base import Base
from league.models.tournament import round_index


class KnockoutMatch(Base):
    """Single-elimination fixture. Winner feeds the match whose source is "W{match_number}"."""

    __tablename__ = "knockout_matches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tournament_id: Mapped[int] = mapped_column(ForeignKey("tournaments.id"), nullable=False, index=True)
    round: Mapped[str] = mapped_column(String(32), nullable=False)  # round_of_32 .. final
    match_number: Mapped[int] = mapped_column(Integer, nullable=False)
    home_source: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)  # e.g. "1A", "W49"
    away_source: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    home_team_id: Mapped[Optional[int]] = mapped_column(ForeignKey("teams.id"), nullable=True)
    away_team_id: Mapped[Optional[int]] = mapped_column(ForeignKey("teams.id"), nullable=True)
    winner_team_id: Mapped[Optional[int]] = mapped_column(ForeignKey("teams.id"), nullable=True)
    points_value: Mapped[int] = mapped_column(Integer, nullable=False)

    tournament = relationship("Tournament", back_populates="knockout_matches")

    @validates("round")
    def _validate_round(self, key, value):
        round_index(value)
        return value
