"""Tournament-wide aggregates."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from league.models.base import Base


class TournamentStats(Base):
    """Single stats row per tournament. total_group_stage_goals is the tiebreaker target."""

    __tablename__ = "tournament_stats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tournament_id: Mapped[int] = mapped_column(ForeignKey("tournaments.id"), nullable=False, unique=True)
    total_group_stage_goals: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    tournament = relationship("Tournament", back_populates="stats")
