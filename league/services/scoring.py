"""Scoring and ranking engine.

Turns stored predictions and official results into points, tiebreaker
distances and ranks. Every run recomputes all engine-owned fields of a
tournament from scratch, so re-running with the same inputs gives the same
outputs and a retry after a failure is always safe.

Steps, in the order recalculate_all runs them:
    1. calculate_group_stage_scores
    2. calculate_knockout_scores
    3. calculate_tiebreakers
    4. calculate_rankings

Each step reads through one session, then issues its row updates
concurrently (one short transaction per row). A failed write does not stop
the others; the step raises a single ScoringWriteError afterwards.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

import config
from league.models import (
    Group,
    GroupPrediction,
    GroupResult,
    KnockoutMatch,
    KnockoutPrediction,
    TournamentEntry,
    TournamentStats,
)
from league.models.base import async_session_factory

logger = logging.getLogger("predictor.scoring")


class ScoringError(Exception):
    """Base class for scoring failures. Standings should be treated as unchanged."""


class ScoringReadError(ScoringError):
    """A required read failed; no writes were attempted."""


class ScoringWriteError(ScoringError):
    """One or more row updates in a step failed. Successful updates stay applied."""

    def __init__(self, step: str, failed: int, total: int):
        self.step = step
        self.failed = failed
        self.total = total
        super().__init__(f"{step}: {failed} of {total} updates failed")


# (column, position) for each scored slot of a group prediction
GROUP_SLOTS = (
    ("predicted_1st", 1),
    ("predicted_2nd", 2),
    ("predicted_3rd", 3),
)


# --- Store access ---


async def _fetch(session: AsyncSession, what: str, stmt) -> list:
    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as e:
        raise ScoringReadError(f"Failed to fetch {what}: {e}") from e
    return list(result.all())


async def _write_row(model, row_id: int, values: dict) -> None:
    """Update one row in its own transaction."""
    async with async_session_factory() as session:
        await session.execute(update(model).where(model.id == row_id).values(**values))
        await session.commit()


async def _run_writes(step: str, writes: Sequence[tuple[Any, int, dict]]) -> None:
    """Run (model, row_id, values) updates concurrently. Raise ScoringWriteError if any failed."""
    if not writes:
        return
    semaphore = asyncio.Semaphore(config.SCORING_WRITE_CONCURRENCY)

    async def _bounded(model, row_id: int, values: dict) -> None:
        async with semaphore:
            await _write_row(model, row_id, values)

    results = await asyncio.gather(
        *(_bounded(model, row_id, values) for model, row_id, values in writes),
        return_exceptions=True,
    )
    failed = 0
    for (model, row_id, _), result in zip(writes, results):
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result  # cancellation
            failed += 1
            logger.warning("%s: update of %s %s failed: %r", step, model.__tablename__, row_id, result)
    if failed:
        logger.error("%s: %d of %d updates failed", step, failed, len(writes))
        raise ScoringWriteError(step, failed, len(writes))
    logger.debug("%s: %d updates applied", step, len(writes))


# --- Group stage ---


def score_group_prediction(
    picks: Sequence[Optional[int]], results: Mapping[int, tuple[int, bool]]
) -> int:
    """Score one group prediction.

    picks: predicted team ids for 1st, 2nd, 3rd (None for an empty slot).
    results: team_id -> (final_position, qualified) for the group; may be empty.

    A qualified team earns 1, plus 1 more when it finished exactly in the
    predicted slot. Teams that did not qualify, or have no result yet, earn 0.
    """
    points = 0
    for position, team_id in enumerate(picks, start=1):
        if team_id is None:
            continue
        actual = results.get(team_id)
        if actual is None:
            continue
        final_position, qualified = actual
        if qualified:
            points += 1
            if final_position == position:
                points += 1
    return points


async def calculate_group_stage_scores(tournament_id: int) -> None:
    """Score every group prediction and set group_stage_points on every entry."""
    async with async_session_factory() as session:
        entries = await _fetch(
            session,
            "entries",
            select(TournamentEntry.id).where(TournamentEntry.tournament_id == tournament_id),
        )
        if not entries:
            return
        results = await _fetch(
            session,
            "group results",
            select(GroupResult.group_id, GroupResult.team_id, GroupResult.final_position, GroupResult.qualified)
            .join(Group, Group.id == GroupResult.group_id)
            .where(Group.tournament_id == tournament_id),
        )
        predictions = await _fetch(
            session,
            "group predictions",
            select(
                GroupPrediction.id,
                GroupPrediction.entry_id,
                GroupPrediction.group_id,
                *(getattr(GroupPrediction, column) for column, _ in GROUP_SLOTS),
            )
            .join(TournamentEntry, TournamentEntry.id == GroupPrediction.entry_id)
            .where(TournamentEntry.tournament_id == tournament_id),
        )

    # group_id -> team_id -> (final_position, qualified)
    results_by_group: dict[int, dict[int, tuple[int, bool]]] = {}
    for r in results:
        results_by_group.setdefault(r.group_id, {})[r.team_id] = (r.final_position, bool(r.qualified))

    totals = {e.id: 0 for e in entries}
    writes = []
    for pred in predictions:
        picks = [getattr(pred, column) for column, _ in GROUP_SLOTS]
        points = score_group_prediction(picks, results_by_group.get(pred.group_id, {}))
        totals[pred.entry_id] += points
        writes.append((GroupPrediction, pred.id, {"points_earned": points}))
    for entry_id, total in totals.items():
        writes.append((TournamentEntry, entry_id, {"group_stage_points": total}))

    logger.info(
        "Group stage: scored %d predictions for %d entries (%d groups with results)",
        len(predictions), len(entries), len(results_by_group),
    )
    await _run_writes("group stage scoring", writes)


# --- Knockout ---


def score_knockout_prediction(
    predicted_winner_id: Optional[int], winner_team_id: Optional[int], points_value: int
) -> tuple[Optional[bool], int]:
    """Return (is_correct, points_earned). Undecided matches give (None, 0)."""
    if winner_team_id is None:
        return None, 0
    is_correct = predicted_winner_id == winner_team_id
    return is_correct, points_value if is_correct else 0


async def calculate_knockout_scores(tournament_id: int) -> None:
    """Score every knockout prediction and set knockout_points on every entry.

    Predictions for undecided matches are reset to is_correct=None, points_earned=0,
    so a cleared result never leaves a stale score behind.
    """
    async with async_session_factory() as session:
        entries = await _fetch(
            session,
            "entries",
            select(TournamentEntry.id).where(TournamentEntry.tournament_id == tournament_id),
        )
        if not entries:
            return
        matches = await _fetch(
            session,
            "knockout matches",
            select(KnockoutMatch.id, KnockoutMatch.winner_team_id, KnockoutMatch.points_value)
            .where(KnockoutMatch.tournament_id == tournament_id),
        )
        predictions = await _fetch(
            session,
            "knockout predictions",
            select(
                KnockoutPrediction.id,
                KnockoutPrediction.entry_id,
                KnockoutPrediction.match_id,
                KnockoutPrediction.predicted_winner_id,
            )
            .join(TournamentEntry, TournamentEntry.id == KnockoutPrediction.entry_id)
            .where(TournamentEntry.tournament_id == tournament_id),
        )

    match_by_id = {m.id: m for m in matches}
    totals = {e.id: 0 for e in entries}
    writes = []
    decided = 0
    for pred in predictions:
        match = match_by_id.get(pred.match_id)
        if match is None:
            is_correct, points = None, 0
        else:
            is_correct, points = score_knockout_prediction(
                pred.predicted_winner_id, match.winner_team_id, match.points_value
            )
        if is_correct is not None:
            decided += 1
        totals[pred.entry_id] += points
        writes.append((KnockoutPrediction, pred.id, {"is_correct": is_correct, "points_earned": points}))
    for entry_id, total in totals.items():
        writes.append((TournamentEntry, entry_id, {"knockout_points": total}))

    logger.info(
        "Knockout: %d of %d predictions on decided matches, %d entries",
        decided, len(predictions), len(entries),
    )
    await _run_writes("knockout scoring", writes)


# --- Tiebreaker ---


def tiebreaker_diff(predicted_goals: Optional[int], actual_goals: Optional[int]) -> Optional[int]:
    if predicted_goals is None or actual_goals is None:
        return None
    return abs(predicted_goals - actual_goals)


async def calculate_tiebreakers(tournament_id: int) -> None:
    """Set tiebreaker_diff on every entry. No-op until total_group_stage_goals is known."""
    async with async_session_factory() as session:
        stats = await _fetch(
            session,
            "tournament stats",
            select(TournamentStats.total_group_stage_goals)
            .where(TournamentStats.tournament_id == tournament_id),
        )
        actual_goals = stats[0].total_group_stage_goals if stats else None
        if actual_goals is None:
            logger.info("Tiebreaker: no total group stage goals for tournament %s yet", tournament_id)
            return
        entries = await _fetch(
            session,
            "entries",
            select(TournamentEntry.id, TournamentEntry.tiebreaker_goals)
            .where(TournamentEntry.tournament_id == tournament_id),
        )

    writes = [
        (TournamentEntry, e.id, {"tiebreaker_diff": tiebreaker_diff(e.tiebreaker_goals, actual_goals)})
        for e in entries
    ]
    await _run_writes("tiebreaker", writes)


# --- Ranking ---

DESC = "desc"
ASC_NULLS_LAST = "asc_nulls_last"


@dataclass(frozen=True)
class RankKey:
    """One ordering criterion: an attribute name and DESC or ASC_NULLS_LAST."""

    field: str
    order: str


OVERALL_RANK_KEYS = (
    RankKey("total_points", DESC),
    RankKey("tiebreaker_diff", ASC_NULLS_LAST),
    RankKey("knockout_points", DESC),
)

GROUP_STAGE_RANK_KEYS = (
    RankKey("group_stage_points", DESC),
    RankKey("tiebreaker_diff", ASC_NULLS_LAST),
)


def build_sort_key(keys: Iterable[RankKey]) -> Callable[[Any], tuple]:
    """Build a sort key function; rows with equal keys are tied."""
    keys = tuple(keys)
    for key in keys:
        if key.order not in (DESC, ASC_NULLS_LAST):
            raise ValueError(f"Unknown rank order: {key.order}")

    def sort_key(row) -> tuple:
        parts = []
        for key in keys:
            value = getattr(row, key.field)
            if key.order == DESC:
                parts.append(-(value or 0))
            else:
                parts.append((value is None, value if value is not None else 0))
        return tuple(parts)

    return sort_key


def assign_ranks(rows: Iterable[Any], keys: Iterable[RankKey]) -> dict[int, int]:
    """Return row.id -> rank.

    Rank is the 1-based position in sorted order, except a row tied on every
    key with the row before it shares that row's rank (1, 1, 3, ...).
    """
    sort_key = build_sort_key(keys)
    ranks: dict[int, int] = {}
    previous_key = None
    previous_rank = 0
    for position, row in enumerate(sorted(rows, key=sort_key), start=1):
        key = sort_key(row)
        rank = previous_rank if key == previous_key else position
        ranks[row.id] = rank
        previous_key, previous_rank = key, rank
    return ranks


async def calculate_rankings(tournament_id: int) -> None:
    """Set overall_rank and group_stage_rank on every entry from the stored aggregates."""
    async with async_session_factory() as session:
        entries = await _fetch(
            session,
            "entries",
            select(
                TournamentEntry.id,
                TournamentEntry.group_stage_points,
                TournamentEntry.knockout_points,
                TournamentEntry.total_points,
                TournamentEntry.tiebreaker_diff,
            )
            .where(TournamentEntry.tournament_id == tournament_id),
        )
    if not entries:
        return

    overall = assign_ranks(entries, OVERALL_RANK_KEYS)
    group_stage = assign_ranks(entries, GROUP_STAGE_RANK_KEYS)
    writes = [
        (TournamentEntry, e.id, {"overall_rank": overall[e.id], "group_stage_rank": group_stage[e.id]})
        for e in entries
    ]
    await _run_writes("ranking", writes)


# --- Orchestrator ---


async def recalculate_all(tournament_id: int) -> None:
    """Run every scoring step in order. The first failure aborts the rest."""
    logger.info("Recalculating scores for tournament %s", tournament_id)
    await calculate_group_stage_scores(tournament_id)
    await calculate_knockout_scores(tournament_id)
    await calculate_tiebreakers(tournament_id)
    await calculate_rankings(tournament_id)
    logger.info("Scores recalculated for tournament %s", tournament_id)
