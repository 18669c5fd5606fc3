"""Official result recording: group standings, knockout winners, tiebreaker total.

All functions work inside the caller's session and leave committing to the
caller. Validation problems raise ValueError, missing rows raise LookupError.
"""
from __future__ import annotations

import logging

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from league.models import Group, GroupResult, GroupTeam, KnockoutMatch, TournamentStats

logger = logging.getLogger("predictor.results")


def winner_source(match_number: int) -> str:
    """Source label a later match uses for this match's winner."""
    return f"W{match_number}"


async def _get_match(session: AsyncSession, tournament_id: int, match_id: int) -> KnockoutMatch:
    match = await session.get(KnockoutMatch, match_id)
    if not match or match.tournament_id != tournament_id:
        raise LookupError("Match not found")
    return match


async def _downstream_matches(
    session: AsyncSession, tournament_id: int, match_number: int
) -> list[KnockoutMatch]:
    source = winner_source(match_number)
    result = await session.execute(
        select(KnockoutMatch)
        .where(
            KnockoutMatch.tournament_id == tournament_id,
            or_(KnockoutMatch.home_source == source, KnockoutMatch.away_source == source),
        )
        .order_by(KnockoutMatch.match_number)
    )
    return list(result.scalars().all())


async def record_group_result(
    session: AsyncSession,
    tournament_id: int,
    group_id: int,
    team_id: int,
    final_position: int,
    qualified: bool,
) -> GroupResult:
    """Insert or update the official result of one team in one group."""
    group = await session.get(Group, group_id)
    if not group or group.tournament_id != tournament_id:
        raise LookupError("Group not found")
    if final_position < 1:
        raise ValueError("final_position must be 1 or greater")
    member = await session.execute(
        select(GroupTeam.id).where(GroupTeam.group_id == group_id, GroupTeam.team_id == team_id)
    )
    if member.scalar_one_or_none() is None:
        raise ValueError(f"Team is not in group {group.name}")

    result = await session.execute(
        select(GroupResult).where(GroupResult.group_id == group_id, GroupResult.team_id == team_id)
    )
    row = result.scalar_one_or_none()
    if row:
        row.final_position = final_position
        row.qualified = qualified
    else:
        row = GroupResult(
            group_id=group_id, team_id=team_id, final_position=final_position, qualified=qualified
        )
        session.add(row)
    await session.flush()
    logger.info(
        "Group %s: team %s finished %d (qualified=%s)", group.name, team_id, final_position, qualified
    )
    return row


async def record_knockout_result(
    session: AsyncSession, tournament_id: int, match_id: int, winner_team_id: int
) -> KnockoutMatch:
    """Set a match winner and place the winner in the next match's slot."""
    match = await _get_match(session, tournament_id, match_id)
    participants = {match.home_team_id, match.away_team_id}
    if None not in participants and winner_team_id not in participants:
        raise ValueError("Winner must be one of the match's teams")

    source = winner_source(match.match_number)
    next_matches = await _downstream_matches(session, tournament_id, match.match_number)
    for next_match in next_matches:
        if next_match.winner_team_id is None:
            continue
        slots = []
        if next_match.home_source == source:
            slots.append(next_match.home_team_id)
        if next_match.away_source == source:
            slots.append(next_match.away_team_id)
        if any(slot != winner_team_id for slot in slots):
            raise ValueError(
                f"Match {next_match.match_number} already has a result; clear it first"
            )

    match.winner_team_id = winner_team_id
    for next_match in next_matches:
        if next_match.home_source == source:
            next_match.home_team_id = winner_team_id
        if next_match.away_source == source:
            next_match.away_team_id = winner_team_id
    await session.flush()
    logger.info("Match %d (%s): winner team %s", match.match_number, match.round, winner_team_id)
    return match


async def clear_knockout_result(
    session: AsyncSession, tournament_id: int, match_id: int
) -> KnockoutMatch:
    """Unset a match winner and pull the team back out of the next match. Use when a result was set incorrectly."""
    match = await _get_match(session, tournament_id, match_id)
    if match.winner_team_id is None:
        return match
    source = winner_source(match.match_number)
    for next_match in await _downstream_matches(session, tournament_id, match.match_number):
        if next_match.winner_team_id is not None:
            raise ValueError(
                f"Match {next_match.match_number} already has a result; clear it first"
            )
        if next_match.home_source == source:
            next_match.home_team_id = None
        if next_match.away_source == source:
            next_match.away_team_id = None
    match.winner_team_id = None
    await session.flush()
    logger.info("Match %d (%s): result cleared", match.match_number, match.round)
    return match


async def set_total_group_stage_goals(
    session: AsyncSession, tournament_id: int, goals: int
) -> TournamentStats:
    """Insert or update the tiebreaker target."""
    if isinstance(goals, bool) or not isinstance(goals, int) or goals < 0:
        raise ValueError("total_group_stage_goals must be a non-negative integer")
    result = await session.execute(
        select(TournamentStats).where(TournamentStats.tournament_id == tournament_id)
    )
    stats = result.scalar_one_or_none()
    if stats:
        stats.total_group_stage_goals = goals
    else:
        stats = TournamentStats(tournament_id=tournament_id, total_group_stage_goals=goals)
        session.add(stats)
    await session.flush()
    logger.info("Tournament %s: total group stage goals set to %s", tournament_id, goals)
    return stats
