"""Shared API utilities."""
from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from league.models import Player, Tournament


def player_display_name(player: Player | None) -> str:
    """Return the name shown on the leaderboard: nickname if set, else display name."""
    if not player:
        return "Unknown"
    nickname = (player.nickname or "").strip()
    if nickname:
        return nickname
    return (player.display_name or "").strip() or "Unknown"


async def get_tournament_or_404(session: AsyncSession, slug: str) -> Tournament:
    result = await session.execute(select(Tournament).where(Tournament.slug == slug))
    t = result.scalar_one_or_none()
    if not t:
        raise HTTPException(404, "Tournament not found")
    return t
