"""Public API routes: leaderboard, scoring trigger, entries and predictions."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from league.models import TournamentEntry
from league.models.base import async_session_factory
from league.services.predictions import (
    enter_tournament,
    submit_group_predictions,
    submit_knockout_prediction,
)
from league.services.scoring import ScoringError, recalculate_all

from web.api.utils import get_tournament_or_404, player_display_name

logger = logging.getLogger("predictor.api")

router = APIRouter(prefix="/api", tags=["tournaments"])


# --- Pydantic schemas ---


class LeaderboardEntry(BaseModel):
    entry_id: int
    player_id: int
    display_name: str
    group_stage_points: int
    knockout_points: int
    total_points: int
    tiebreaker_goals: Optional[int] = None
    tiebreaker_diff: Optional[int] = None
    group_stage_rank: Optional[int] = None
    overall_rank: Optional[int] = None


class ScoreResponse(BaseModel):
    success: bool
    message: str


class EnterRequest(BaseModel):
    player_id: int
    tiebreaker_goals: Optional[int] = None


class EntryResponse(BaseModel):
    entry_id: int
    tournament_id: int
    player_id: int
    tiebreaker_goals: Optional[int] = None


class GroupPick(BaseModel):
    group_id: int
    predicted_1st: Optional[int] = None
    predicted_2nd: Optional[int] = None
    predicted_3rd: Optional[int] = None


class GroupPredictionsRequest(BaseModel):
    player_id: int
    predictions: list[GroupPick]
    tiebreaker_goals: Optional[int] = None


class KnockoutPick(BaseModel):
    match_id: int
    predicted_winner_id: int


class KnockoutPredictionsRequest(BaseModel):
    player_id: int
    predictions: list[KnockoutPick]


async def run_scoring(tournament_id: int) -> None:
    """Recalculate a tournament, mapping engine failures to a generic 500."""
    try:
        await recalculate_all(tournament_id)
    except ScoringError:
        logger.exception("Scoring failed for tournament %s", tournament_id)
        raise HTTPException(500, "Scoring failed")


# --- Leaderboard ---


@router.get("/tournaments/{slug}/leaderboard", response_model=list[LeaderboardEntry])
async def get_leaderboard(slug: str):
    """All entries with points and ranks, best overall rank first (unranked last)."""
    async with async_session_factory() as session:
        t = await get_tournament_or_404(session, slug)
        result = await session.execute(
            select(TournamentEntry)
            .where(TournamentEntry.tournament_id == t.id)
            .order_by(TournamentEntry.overall_rank.asc().nulls_last(), TournamentEntry.id)
            .options(selectinload(TournamentEntry.player))
        )
        return [
            LeaderboardEntry(
                entry_id=e.id,
                player_id=e.player_id,
                display_name=player_display_name(e.player),
                group_stage_points=e.group_stage_points,
                knockout_points=e.knockout_points,
                total_points=e.total_points,
                tiebreaker_goals=e.tiebreaker_goals,
                tiebreaker_diff=e.tiebreaker_diff,
                group_stage_rank=e.group_stage_rank,
                overall_rank=e.overall_rank,
            )
            for e in result.scalars().all()
        ]


# --- Scoring ---


@router.post("/tournaments/{slug}/score", response_model=ScoreResponse)
async def score_tournament(slug: str):
    """Recalculate every score, tiebreaker and rank for the tournament."""
    async with async_session_factory() as session:
        t = await get_tournament_or_404(session, slug)
    await run_scoring(t.id)
    return ScoreResponse(success=True, message="Scoring calculation complete")


# --- Entries and predictions ---


@router.post("/tournaments/{slug}/enter", response_model=EntryResponse, status_code=201)
async def enter(slug: str, body: EnterRequest):
    """Register a player for the tournament."""
    async with async_session_factory() as session:
        t = await get_tournament_or_404(session, slug)
        try:
            entry = await enter_tournament(session, t.id, body.player_id, body.tiebreaker_goals)
            await session.commit()
        except LookupError as e:
            await session.rollback()
            raise HTTPException(404, str(e))
        except ValueError as e:
            await session.rollback()
            raise HTTPException(400, str(e))
        return EntryResponse(
            entry_id=entry.id,
            tournament_id=entry.tournament_id,
            player_id=entry.player_id,
            tiebreaker_goals=entry.tiebreaker_goals,
        )


@router.post("/tournaments/{slug}/predictions/groups")
async def post_group_predictions(slug: str, body: GroupPredictionsRequest):
    """Submit or update group picks while the group stage is open."""
    async with async_session_factory() as session:
        t = await get_tournament_or_404(session, slug)
        try:
            await submit_group_predictions(
                session,
                t.id,
                body.player_id,
                [p.model_dump() for p in body.predictions],
                body.tiebreaker_goals,
            )
            await session.commit()
        except LookupError as e:
            await session.rollback()
            raise HTTPException(404, str(e))
        except ValueError as e:
            await session.rollback()
            raise HTTPException(400, str(e))
    return {"success": True}


@router.post("/tournaments/{slug}/predictions/knockout")
async def post_knockout_predictions(slug: str, body: KnockoutPredictionsRequest):
    """Submit or update knockout picks while the knockout stage is open. All or nothing."""
    async with async_session_factory() as session:
        t = await get_tournament_or_404(session, slug)
        try:
            for pick in body.predictions:
                await submit_knockout_prediction(
                    session, t.id, body.player_id, pick.match_id, pick.predicted_winner_id
                )
            await session.commit()
        except LookupError as e:
            await session.rollback()
            raise HTTPException(404, str(e))
        except ValueError as e:
            await session.rollback()
            raise HTTPException(400, str(e))
    return {"success": True}
