"""Tests for the scoring engine against the database."""
import pytest
from sqlalchemy.exc import OperationalError

from league.models import GroupPrediction, KnockoutPrediction, TournamentEntry
from league.services import scoring
from league.services.scoring import (
    ScoringReadError,
    ScoringWriteError,
    calculate_group_stage_scores,
    calculate_knockout_scores,
    calculate_rankings,
    calculate_tiebreakers,
    recalculate_all,
)


async def _snapshot(seed, entries):
    """Engine-owned fields of each entry, for comparing runs."""
    rows = []
    for e in entries:
        row = await seed.get(TournamentEntry, e.id)
        rows.append((
            row.group_stage_points,
            row.knockout_points,
            row.total_points,
            row.tiebreaker_diff,
            row.group_stage_rank,
            row.overall_rank,
        ))
    return rows


# --- Group stage ---


@pytest.mark.asyncio
async def test_group_stage_scores_persisted(seed, group_a):
    """Exact picks score 4, swapped qualifiers score 2."""
    t, group = group_a["tournament"], group_a["group"]
    x, y, z = group_a["x"], group_a["y"], group_a["z"]
    exact = await seed.entry(t, "Exact")
    swapped = await seed.entry(t, "Swapped")
    p_exact = await seed.group_prediction(exact, group, x, y, z)
    p_swapped = await seed.group_prediction(swapped, group, y, x, z)

    await calculate_group_stage_scores(t.id)

    assert (await seed.get(GroupPrediction, p_exact.id)).points_earned == 4
    assert (await seed.get(GroupPrediction, p_swapped.id)).points_earned == 2
    assert (await seed.get(TournamentEntry, exact.id)).group_stage_points == 4
    assert (await seed.get(TournamentEntry, swapped.id)).group_stage_points == 2


@pytest.mark.asyncio
async def test_group_stage_sums_across_groups(seed, group_a):
    t, x, y = group_a["tournament"], group_a["x"], group_a["y"]
    p, q = await seed.team("Pland"), await seed.team("Qland")
    group_b = await seed.group(t, "B", teams=(p, q))
    await seed.group_result(group_b, p, 2, True)
    await seed.group_result(group_b, q, 1, True)
    entry = await seed.entry(t, "Both")
    await seed.group_prediction(entry, group_a["group"], x, y)
    await seed.group_prediction(entry, group_b, p, q)

    await calculate_group_stage_scores(t.id)

    assert (await seed.get(TournamentEntry, entry.id)).group_stage_points == 4 + 2


@pytest.mark.asyncio
async def test_group_without_results_resets_stale_points(seed):
    """Predictions for groups with no results are written as 0, as is the entry total."""
    t = await seed.tournament()
    a, b = await seed.team("Aland"), await seed.team("Bland")
    group = await seed.group(t, "C", teams=(a, b))
    entry = await seed.entry(t, "Stale", group_stage_points=9)
    pred = await seed.group_prediction(entry, group, a, b, points_earned=5)
    no_preds = await seed.entry(t, "Nothing", group_stage_points=3)

    await calculate_group_stage_scores(t.id)

    assert (await seed.get(GroupPrediction, pred.id)).points_earned == 0
    assert (await seed.get(TournamentEntry, entry.id)).group_stage_points == 0
    assert (await seed.get(TournamentEntry, no_preds.id)).group_stage_points == 0


@pytest.mark.asyncio
async def test_group_stage_no_entries_is_noop(seed):
    t = await seed.tournament()
    await calculate_group_stage_scores(t.id)


@pytest.mark.asyncio
async def test_group_stage_ignores_other_tournaments(seed, group_a):
    other = await seed.tournament(slug="euro-2028", name="Euro 2028")
    outsider = await seed.entry(other, "Outsider", group_stage_points=7)

    await calculate_group_stage_scores(group_a["tournament"].id)

    assert (await seed.get(TournamentEntry, outsider.id)).group_stage_points == 7


# --- Knockout ---


@pytest.mark.asyncio
async def test_knockout_scores(seed):
    """Semi-final worth 8: correct pick earns 8, wrong pick 0, undecided match resets."""
    t = await seed.tournament()
    a, b, c, d = [await seed.team(n) for n in ("Aland", "Bland", "Cland", "Dland")]
    decided = await seed.match(t, 61, "semi_final", home=a, away=b, winner=a)
    undecided = await seed.match(t, 62, "semi_final", home=c, away=d)
    right = await seed.entry(t, "Right")
    wrong = await seed.entry(t, "Wrong")
    p_right = await seed.knockout_prediction(right, decided, a)
    p_wrong = await seed.knockout_prediction(wrong, decided, b)
    # Left over from a result that has since been cleared
    p_pending = await seed.knockout_prediction(right, undecided, c, is_correct=True, points_earned=8)

    await calculate_knockout_scores(t.id)

    row = await seed.get(KnockoutPrediction, p_right.id)
    assert (row.is_correct, row.points_earned) == (True, 8)
    row = await seed.get(KnockoutPrediction, p_wrong.id)
    assert (row.is_correct, row.points_earned) == (False, 0)
    row = await seed.get(KnockoutPrediction, p_pending.id)
    assert (row.is_correct, row.points_earned) == (None, 0)
    assert (await seed.get(TournamentEntry, right.id)).knockout_points == 8
    assert (await seed.get(TournamentEntry, wrong.id)).knockout_points == 0


@pytest.mark.asyncio
async def test_knockout_points_sum_by_round(seed):
    t = await seed.tournament()
    a, b, c = [await seed.team(n) for n in ("Aland", "Bland", "Cland")]
    qf = await seed.match(t, 57, "quarter_final", home=a, away=b, winner=a)
    final = await seed.match(t, 64, "final", home=a, away=c, winner=a)
    entry = await seed.entry(t, "Champion", knockout_points=100)
    await seed.knockout_prediction(entry, qf, a)
    await seed.knockout_prediction(entry, final, a)

    await calculate_knockout_scores(t.id)

    assert (await seed.get(TournamentEntry, entry.id)).knockout_points == 4 + 16


# --- Tiebreaker ---


@pytest.mark.asyncio
async def test_tiebreaker_diff(seed):
    t = await seed.tournament()
    await seed.stats(t, 120)
    under = await seed.entry(t, "Under", tiebreaker_goals=115)
    over = await seed.entry(t, "Over", tiebreaker_goals=131)
    silent = await seed.entry(t, "Silent", tiebreaker_diff=4)

    await calculate_tiebreakers(t.id)

    assert (await seed.get(TournamentEntry, under.id)).tiebreaker_diff == 5
    assert (await seed.get(TournamentEntry, over.id)).tiebreaker_diff == 11
    assert (await seed.get(TournamentEntry, silent.id)).tiebreaker_diff is None


@pytest.mark.asyncio
async def test_tiebreaker_without_target_is_noop(seed):
    t = await seed.tournament()
    entry = await seed.entry(t, "Early", tiebreaker_goals=100)
    await calculate_tiebreakers(t.id)
    assert (await seed.get(TournamentEntry, entry.id)).tiebreaker_diff is None

    await seed.stats(t, None)
    await calculate_tiebreakers(t.id)
    assert (await seed.get(TournamentEntry, entry.id)).tiebreaker_diff is None


# --- Ranking ---


@pytest.mark.asyncio
async def test_rankings_total_points_dominate(seed):
    t = await seed.tournament()
    first = await seed.entry(t, "First", group_stage_points=30, knockout_points=20, tiebreaker_diff=3)
    second = await seed.entry(t, "Second", group_stage_points=50, knockout_points=0, tiebreaker_diff=3)
    third = await seed.entry(t, "Third", group_stage_points=40, knockout_points=0, tiebreaker_diff=1)

    await calculate_rankings(t.id)

    a, b, c = [await seed.get(TournamentEntry, e.id) for e in (first, second, third)]
    assert [a.total_points, b.total_points, c.total_points] == [50, 50, 40]
    # Tied on total and tiebreaker; knockout points decide
    assert [a.overall_rank, b.overall_rank, c.overall_rank] == [1, 2, 3]
    assert [a.group_stage_rank, b.group_stage_rank, c.group_stage_rank] == [3, 1, 2]


@pytest.mark.asyncio
async def test_rankings_full_tie_skips_next_rank(seed):
    t = await seed.tournament()
    a = await seed.entry(t, "A", group_stage_points=50, tiebreaker_diff=3)
    b = await seed.entry(t, "B", group_stage_points=50, tiebreaker_diff=3)
    c = await seed.entry(t, "C", group_stage_points=40, tiebreaker_diff=1)
    d = await seed.entry(t, "D")

    await calculate_rankings(t.id)

    ranks = [(await seed.get(TournamentEntry, e.id)).overall_rank for e in (a, b, c, d)]
    assert ranks == [1, 1, 3, 4]


# --- Orchestrator ---


async def _full_tournament(seed, group_a):
    t, group = group_a["tournament"], group_a["group"]
    x, y, z, w = group_a["x"], group_a["y"], group_a["z"], group_a["w"]
    sf = await seed.match(t, 61, "semi_final", home=x, away=y, winner=y)
    final = await seed.match(t, 64, "final", home=y, away=w)
    await seed.stats(t, 120)
    alice = await seed.entry(t, "Alice", tiebreaker_goals=118)
    bob = await seed.entry(t, "Bob", tiebreaker_goals=122)
    cara = await seed.entry(t, "Cara")
    dan = await seed.entry(t, "Dan", tiebreaker_goals=90)
    await seed.group_prediction(alice, group, x, y, z)
    await seed.group_prediction(bob, group, x, y, w)
    await seed.group_prediction(cara, group, y, x, z)
    await seed.knockout_prediction(alice, sf, x)
    await seed.knockout_prediction(bob, sf, y)
    await seed.knockout_prediction(bob, final, w)
    await seed.knockout_prediction(cara, sf, y)
    return t, [alice, bob, cara, dan]


@pytest.mark.asyncio
async def test_recalculate_all(seed, group_a):
    t, entries = await _full_tournament(seed, group_a)

    await recalculate_all(t.id)

    assert await _snapshot(seed, entries) == [
        # group, knockout, total, diff, group rank, overall rank
        (4, 0, 4, 2, 1, 3),
        (4, 8, 12, 2, 1, 1),
        (2, 8, 10, None, 3, 2),
        (0, 0, 0, 30, 4, 4),
    ]


@pytest.mark.asyncio
async def test_recalculate_all_is_idempotent(seed, group_a):
    t, entries = await _full_tournament(seed, group_a)

    await recalculate_all(t.id)
    first = await _snapshot(seed, entries)
    await recalculate_all(t.id)
    assert await _snapshot(seed, entries) == first


@pytest.mark.asyncio
async def test_recalculate_all_stops_at_first_failure(seed, monkeypatch):
    t = await seed.tournament()
    calls = []

    async def group_step(tournament_id):
        calls.append("group")

    async def failing_knockout_step(tournament_id):
        calls.append("knockout")
        raise ScoringWriteError("knockout scoring", 2, 10)

    async def later_step(tournament_id):
        calls.append("later")

    monkeypatch.setattr(scoring, "calculate_group_stage_scores", group_step)
    monkeypatch.setattr(scoring, "calculate_knockout_scores", failing_knockout_step)
    monkeypatch.setattr(scoring, "calculate_tiebreakers", later_step)
    monkeypatch.setattr(scoring, "calculate_rankings", later_step)

    with pytest.raises(ScoringWriteError):
        await recalculate_all(t.id)
    assert calls == ["group", "knockout"]


# --- Failures ---


@pytest.mark.asyncio
async def test_partial_write_failure_counts_and_keeps_other_writes(seed, group_a, monkeypatch):
    t, group = group_a["tournament"], group_a["group"]
    x, y, z = group_a["x"], group_a["y"], group_a["z"]
    good = await seed.entry(t, "Good")
    bad = await seed.entry(t, "Bad")
    p_good = await seed.group_prediction(good, group, x, y, z)
    p_bad = await seed.group_prediction(bad, group, y, x, z)

    real_write_row = scoring._write_row

    async def flaky_write_row(model, row_id, values):
        if model is GroupPrediction and row_id == p_bad.id:
            raise RuntimeError("connection reset")
        await real_write_row(model, row_id, values)

    monkeypatch.setattr(scoring, "_write_row", flaky_write_row)

    with pytest.raises(ScoringWriteError) as exc_info:
        await calculate_group_stage_scores(t.id)
    # 2 predictions + 2 entries
    assert exc_info.value.failed == 1
    assert exc_info.value.total == 4
    assert "1 of 4" in str(exc_info.value)
    assert (await seed.get(GroupPrediction, p_good.id)).points_earned == 4
    assert (await seed.get(GroupPrediction, p_bad.id)).points_earned == 0
    assert (await seed.get(TournamentEntry, bad.id)).group_stage_points == 2


@pytest.mark.asyncio
async def test_read_failure_raises_read_error():
    class BrokenSession:
        async def execute(self, stmt):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

    with pytest.raises(ScoringReadError, match="Failed to fetch entries"):
        await scoring._fetch(BrokenSession(), "entries", None)
