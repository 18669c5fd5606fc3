"""Tournament model."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from league.models.base import Base


# Knockout rounds, earliest first
KNOCKOUT_ROUNDS = (
    "round_of_32",
    "round_of_16",
    "quarter_final",
    "semi_final",
    "final",
)

# Reward for a correct pick in each round
DEFAULT_ROUND_POINTS = {
    "round_of_32": 1,
    "round_of_16": 2,
    "quarter_final": 4,
    "semi_final": 8,
    "final": 16,
}

TOURNAMENT_STATUSES = (
    "draft",
    "group_stage_open",
    "group_stage_closed",
    "knockout_open",
    "knockout_closed",
    "completed",
)


def round_index(round_name: str) -> int:
    """Return the position of a knockout round (0 for round_of_32). Raises ValueError for unknown rounds."""
    try:
        return KNOCKOUT_ROUNDS.index(round_name)
    except ValueError:
        raise ValueError(f"Unknown knockout round: {round_name}") from None


class Tournament(Base):
    """World Cup / Euros style tournament that players predict."""

    __tablename__ = "tournaments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    slug: Mapped[str] = mapped_column(String(128), unique=True, nullable=False, index=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(32), default="draft")  # see TOURNAMENT_STATUSES
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    groups = relationship(
        "Group", back_populates="tournament", cascade="all, delete-orphan"
    )
    knockout_matches = relationship(
        "KnockoutMatch", back_populates="tournament", cascade="all, delete-orphan"
    )
    entries = relationship(
        "TournamentEntry", back_populates="tournament", cascade="all, delete-orphan"
    )
    stats = relationship(
        "TournamentStats", back_populates="tournament", cascade="all, delete-orphan", uselist=False
    )

    @validates("status")
    def _validate_status(self, key, value):
        if value not in TOURNAMENT_STATUSES:
            raise ValueError(f"Unknown tournament status: {value}")
        return value
