"""Group stage models: groups, membership and official results."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from league.models.base import Base


class Group(Base):
    """Group in a tournament's group stage (A, B, ...)."""

    __tablename__ = "groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tournament_id: Mapped[int] = mapped_column(ForeignKey("tournaments.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(32), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    tournament = relationship("Tournament", back_populates="groups")
    group_teams = relationship(
        "GroupTeam", back_populates="group", cascade="all, delete-orphan"
    )
    results = relationship(
        "GroupResult", back_populates="group", cascade="all, delete-orphan"
    )


class GroupTeam(Base):
    """Team drawn into a group."""

    __tablename__ = "group_teams"
    __table_args__ = (UniqueConstraint("group_id", "team_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("groups.id"), nullable=False)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), nullable=False)
    seed_position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    group = relationship("Group", back_populates="group_teams")
    team = relationship("Team")


class GroupResult(Base):
    """Official final standing of one team in one group."""

    __tablename__ = "group_results"
    __table_args__ = (UniqueConstraint("group_id", "team_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("groups.id"), nullable=False, index=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), nullable=False)
    final_position: Mapped[int] = mapped_column(Integer, nullable=False)  # 1..N
    qualified: Mapped[bool] = mapped_column(Boolean, default=False)

    group = relationship("Group", back_populates="results")
