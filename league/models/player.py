"""Player model."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from league.models.base import Base


class Player(Base):
    """Person taking part in one or more prediction tournaments."""

    __tablename__ = "players"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    nickname: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    entries = relationship(
        "TournamentEntry", back_populates="player", cascade="all, delete-orphan"
    )
