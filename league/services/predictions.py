"""Player-facing prediction submission: entering a tournament and saving picks.

Like result recording, these work inside the caller's session and leave
committing to the caller. A tournament in the wrong status or a bad pick
raises ValueError, missing rows raise LookupError.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from league.models import (
    Group,
    GroupPrediction,
    GroupTeam,
    KnockoutMatch,
    KnockoutPrediction,
    Player,
    Tournament,
    TournamentEntry,
)

logger = logging.getLogger("predictor.predictions")


async def _get_tournament(session: AsyncSession, tournament_id: int) -> Tournament:
    tournament = await session.get(Tournament, tournament_id)
    if not tournament:
        raise LookupError("Tournament not found")
    return tournament


async def get_entry(session: AsyncSession, tournament_id: int, player_id: int) -> TournamentEntry:
    """The player's entry in the tournament."""
    result = await session.execute(
        select(TournamentEntry).where(
            TournamentEntry.tournament_id == tournament_id,
            TournamentEntry.player_id == player_id,
        )
    )
    entry = result.scalar_one_or_none()
    if not entry:
        raise LookupError("Not entered in this tournament")
    return entry


def _check_tiebreaker(goals: Optional[int]) -> None:
    if goals is not None and goals < 0:
        raise ValueError("tiebreaker_goals must be a non-negative integer")


async def enter_tournament(
    session: AsyncSession,
    tournament_id: int,
    player_id: int,
    tiebreaker_goals: Optional[int] = None,
) -> TournamentEntry:
    """Register a player. Open from the first open stage until the tournament completes."""
    tournament = await _get_tournament(session, tournament_id)
    if tournament.status == "draft":
        raise ValueError("Tournament is not yet open for entries")
    if tournament.status == "completed":
        raise ValueError("Tournament has already completed")
    if not await session.get(Player, player_id):
        raise LookupError("Player not found")
    _check_tiebreaker(tiebreaker_goals)

    existing = await session.execute(
        select(TournamentEntry.id).where(
            TournamentEntry.tournament_id == tournament_id,
            TournamentEntry.player_id == player_id,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise ValueError("Already entered this tournament")

    entry = TournamentEntry(
        tournament_id=tournament_id,
        player_id=player_id,
        tiebreaker_goals=tiebreaker_goals,
        group_stage_points=0,
        knockout_points=0,
    )
    session.add(entry)
    await session.flush()
    logger.info("Player %s entered tournament %s (entry %s)", player_id, tournament.slug, entry.id)
    return entry


async def submit_group_predictions(
    session: AsyncSession,
    tournament_id: int,
    player_id: int,
    predictions: Iterable[dict],
    tiebreaker_goals: Optional[int] = None,
) -> list[GroupPrediction]:
    """Save 1st/2nd/3rd picks per group, replacing earlier picks for the same group.

    Each prediction is a dict with ``group_id`` and ``predicted_1st``,
    ``predicted_2nd``, ``predicted_3rd`` (any may be None). Points restart at 0
    until the next scoring run.
    """
    tournament = await _get_tournament(session, tournament_id)
    if tournament.status != "group_stage_open":
        raise ValueError("Group stage predictions are not currently open")
    entry = await get_entry(session, tournament_id, player_id)
    _check_tiebreaker(tiebreaker_goals)

    saved = []
    seen_groups = set()
    for pred in predictions:
        if pred["group_id"] in seen_groups:
            raise ValueError("Each group can only be predicted once per submission")
        seen_groups.add(pred["group_id"])
        group = await session.get(Group, pred["group_id"])
        if not group or group.tournament_id != tournament_id:
            raise LookupError("Group not found")
        picks = [pred.get("predicted_1st"), pred.get("predicted_2nd"), pred.get("predicted_3rd")]
        chosen = [p for p in picks if p is not None]
        if len(set(chosen)) != len(chosen):
            raise ValueError(f"Group {group.name}: a team can only be picked once")
        members = await session.execute(
            select(GroupTeam.team_id).where(GroupTeam.group_id == group.id)
        )
        if not set(chosen) <= set(members.scalars().all()):
            raise ValueError(f"Group {group.name}: picked team is not in the group")

        result = await session.execute(
            select(GroupPrediction).where(
                GroupPrediction.entry_id == entry.id, GroupPrediction.group_id == group.id
            )
        )
        row = result.scalar_one_or_none()
        if not row:
            row = GroupPrediction(entry_id=entry.id, group_id=group.id)
            session.add(row)
        row.predicted_1st, row.predicted_2nd, row.predicted_3rd = picks
        row.points_earned = 0
        saved.append(row)

    if tiebreaker_goals is not None:
        entry.tiebreaker_goals = tiebreaker_goals
    await session.flush()
    logger.info("Entry %s: saved %d group predictions", entry.id, len(saved))
    return saved


async def submit_knockout_prediction(
    session: AsyncSession,
    tournament_id: int,
    player_id: int,
    match_id: int,
    predicted_winner_id: int,
) -> KnockoutPrediction:
    """Save the predicted winner of one knockout match, replacing any earlier pick."""
    tournament = await _get_tournament(session, tournament_id)
    if tournament.status != "knockout_open":
        raise ValueError("Knockout predictions are not currently open")
    entry = await get_entry(session, tournament_id, player_id)

    match = await session.get(KnockoutMatch, match_id)
    if not match or match.tournament_id != tournament_id:
        raise LookupError("Match not found")
    if match.home_team_id is None or match.away_team_id is None:
        raise ValueError(f"Match {match.match_number}: teams are not known yet")
    if predicted_winner_id not in (match.home_team_id, match.away_team_id):
        raise ValueError("Winner must be one of the match's teams")

    result = await session.execute(
        select(KnockoutPrediction).where(
            KnockoutPrediction.entry_id == entry.id, KnockoutPrediction.match_id == match_id
        )
    )
    row = result.scalar_one_or_none()
    if not row:
        row = KnockoutPrediction(entry_id=entry.id, match_id=match_id)
        session.add(row)
    row.predicted_winner_id = predicted_winner_id
    row.is_correct = None
    row.points_earned = 0
    await session.flush()
    logger.info("Entry %s: match %d pick team %s", entry.id, match.match_number, predicted_winner_id)
    return row
