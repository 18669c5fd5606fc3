"""Database models."""
from league.models.base import Base, init_db
from league.models.player import Player
from league.models.team import Team
from league.models.tournament import Tournament
from league.models.group import Group, GroupResult, GroupTeam
from league.models.knockout import KnockoutMatch
from league.models.entry import TournamentEntry
from league.models.prediction import GroupPrediction, KnockoutPrediction
from league.models.stats import TournamentStats

__all__ = [
    "Base",
    "Player",
    "Team",
    "Tournament",
    "Group",
    "GroupTeam",
    "GroupResult",
    "KnockoutMatch",
    "TournamentEntry",
    "GroupPrediction",
    "KnockoutPrediction",
    "TournamentStats",
    "init_db",
]
