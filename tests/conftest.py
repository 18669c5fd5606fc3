"""Pytest configuration and fixtures."""
import os
import tempfile
from pathlib import Path

# Set test env BEFORE any imports that use config. File-backed so concurrent writes use separate connections.
_db_dir = tempfile.mkdtemp(prefix="predictor-test-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{Path(_db_dir) / 'test.db'}"
os.environ["SCORING_WRITE_CONCURRENCY"] = "4"

import pytest
from httpx import ASGITransport, AsyncClient

from league.models import (
    Group,
    GroupPrediction,
    GroupResult,
    GroupTeam,
    KnockoutMatch,
    KnockoutPrediction,
    Player,
    Team,
    Tournament,
    TournamentEntry,
    TournamentStats,
)
from league.models.base import async_session_factory, engine, reset_db
from league.models.tournament import DEFAULT_ROUND_POINTS
from web.api.main import app


@pytest.fixture(autouse=True)
async def _init_db():
    """Fresh tables for every test (ASGI lifespan doesn't run with httpx)."""
    await reset_db()
    yield
    await engine.dispose()


@pytest.fixture
async def client():
    """Async HTTP client for testing the API."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


class Seeder:
    """Inserts rows one at a time, each committed, for building test tournaments."""

    async def add(self, row):
        async with async_session_factory() as session:
            session.add(row)
            await session.commit()
            return row

    async def get(self, model, row_id):
        """Load a fresh copy of a row (sees writes made by other sessions)."""
        async with async_session_factory() as session:
            return await session.get(model, row_id)

    async def tournament(self, slug="wc-2026", name="World Cup 2026", status="group_stage_closed"):
        return await self.add(Tournament(name=name, slug=slug, year=2026, status=status))

    async def team(self, name):
        return await self.add(Team(name=name, code=name[:3].upper()))

    async def group(self, tournament, name="A", teams=()):
        group = await self.add(Group(tournament_id=tournament.id, name=name))
        for i, team in enumerate(teams, start=1):
            await self.add(GroupTeam(group_id=group.id, team_id=team.id, seed_position=i))
        return group

    async def group_result(self, group, team, final_position, qualified):
        return await self.add(
            GroupResult(group_id=group.id, team_id=team.id, final_position=final_position, qualified=qualified)
        )

    async def match(self, tournament, match_number, round="semi_final", home=None, away=None,
                    winner=None, home_source=None, away_source=None, points_value=None):
        return await self.add(
            KnockoutMatch(
                tournament_id=tournament.id,
                round=round,
                match_number=match_number,
                home_source=home_source,
                away_source=away_source,
                home_team_id=home.id if home else None,
                away_team_id=away.id if away else None,
                winner_team_id=winner.id if winner else None,
                points_value=points_value if points_value is not None else DEFAULT_ROUND_POINTS[round],
            )
        )

    async def player(self, name):
        return await self.add(Player(display_name=name))

    async def entry(self, tournament, name, tiebreaker_goals=None, **scores):
        player = await self.player(name)
        return await self.add(
            TournamentEntry(
                tournament_id=tournament.id,
                player_id=player.id,
                tiebreaker_goals=tiebreaker_goals,
                **scores,
            )
        )

    async def group_prediction(self, entry, group, first=None, second=None, third=None, points_earned=0):
        return await self.add(
            GroupPrediction(
                entry_id=entry.id,
                group_id=group.id,
                predicted_1st=first.id if first else None,
                predicted_2nd=second.id if second else None,
                predicted_3rd=third.id if third else None,
                points_earned=points_earned,
            )
        )

    async def knockout_prediction(self, entry, match, winner, is_correct=None, points_earned=0):
        return await self.add(
            KnockoutPrediction(
                entry_id=entry.id,
                match_id=match.id,
                predicted_winner_id=winner.id if winner else None,
                is_correct=is_correct,
                points_earned=points_earned,
            )
        )

    async def stats(self, tournament, total_group_stage_goals):
        return await self.add(
            TournamentStats(tournament_id=tournament.id, total_group_stage_goals=total_group_stage_goals)
        )


@pytest.fixture
def seed():
    return Seeder()


@pytest.fixture
async def group_a(seed):
    """Scenario group: X 1st and Y 2nd qualified, Z 3rd and W 4th out."""
    t = await seed.tournament()
    x, y, z, w = [await seed.team(n) for n in ("Xland", "Yland", "Zland", "Wland")]
    group = await seed.group(t, "A", teams=(x, y, z, w))
    await seed.group_result(group, x, 1, True)
    await seed.group_result(group, y, 2, True)
    await seed.group_result(group, z, 3, False)
    await seed.group_result(group, w, 4, False)
    return {"tournament": t, "group": group, "x": x, "y": y, "z": z, "w": w}
