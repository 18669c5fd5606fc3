"""Admin API: record official results and trigger rescoring."""
from __future__ import annotations

from typing import Annotated, Literal, Union

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from league.models.base import async_session_factory
from league.services.results import (
    clear_knockout_result,
    record_group_result,
    record_knockout_result,
    set_total_group_stage_goals,
)

from web.api.routes import run_scoring
from web.api.utils import get_tournament_or_404

router = APIRouter(prefix="/api/admin/tournaments", tags=["admin"])


class GroupResultPayload(BaseModel):
    type: Literal["group"]
    group_id: int
    team_id: int
    final_position: int
    qualified: bool = False


class KnockoutResultPayload(BaseModel):
    type: Literal["knockout"]
    match_id: int
    winner_team_id: int


GameResultPayload = Annotated[
    Union[GroupResultPayload, KnockoutResultPayload], Field(discriminator="type")
]


class StatsUpdate(BaseModel):
    total_group_stage_goals: int


@router.post("/{slug}/game-result")
async def post_game_result(slug: str, body: GameResultPayload):
    """Record a group standing or knockout winner, then rescore the tournament."""
    async with async_session_factory() as session:
        t = await get_tournament_or_404(session, slug)
        try:
            if isinstance(body, GroupResultPayload):
                await record_group_result(
                    session, t.id, body.group_id, body.team_id, body.final_position, body.qualified
                )
            else:
                await record_knockout_result(session, t.id, body.match_id, body.winner_team_id)
            await session.commit()
        except LookupError as e:
            await session.rollback()
            raise HTTPException(404, str(e))
        except ValueError as e:
            await session.rollback()
            raise HTTPException(400, str(e))
    await run_scoring(t.id)
    return {"success": True}


@router.delete("/{slug}/knockout/{match_id}/winner")
async def delete_knockout_winner(slug: str, match_id: int):
    """Clear a knockout result that was set incorrectly, then rescore."""
    async with async_session_factory() as session:
        t = await get_tournament_or_404(session, slug)
        try:
            await clear_knockout_result(session, t.id, match_id)
            await session.commit()
        except LookupError as e:
            await session.rollback()
            raise HTTPException(404, str(e))
        except ValueError as e:
            await session.rollback()
            raise HTTPException(400, str(e))
    await run_scoring(t.id)
    return {"success": True}


@router.patch("/{slug}/stats")
async def update_stats(slug: str, body: StatsUpdate):
    """Set the tournament's total group stage goals (tiebreaker target), then rescore."""
    async with async_session_factory() as session:
        t = await get_tournament_or_404(session, slug)
        try:
            await set_total_group_stage_goals(session, t.id, body.total_group_stage_goals)
            await session.commit()
        except ValueError as e:
            await session.rollback()
            raise HTTPException(400, str(e))
    await run_scoring(t.id)
    return {"success": True}
