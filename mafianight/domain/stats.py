# mafianight/domain/stats.py
from __future__ import annotations

import logging
from typing import Optional, Protocol

from mafianight.domain.roles import faction
from mafianight.domain.types import Role
from mafianight.store.models import SessionStore, UserStats
from mafianight.store.repo import SessionRepo

logger = logging.getLogger(__name__)


class StatsSink(Protocol):
    async def record_game_result(self, user_id: str, role: Optional[Role], won: bool, hosted: bool) -> None: ...


class StoreStatsSink:
    """Keeps per-user counters under users/<uid>/stats in the session store."""

    def __init__(self, repo: SessionRepo):
        self.repo = repo

    async def record_game_result(self, user_id: str, role: Optional[Role], won: bool, hosted: bool) -> None:
        def _bump(stats: UserStats) -> UserStats:
            stats.games_played += 1
            if won:
                stats.games_won += 1
            if hosted:
                stats.games_hosted += 1
            if role is not None:
                key = role.lower()
                setattr(stats.role_stats, key, getattr(stats.role_stats, key) + 1)
            return stats

        await self.repo.transact_user_stats(user_id, _bump)


async def record_session_results(sink: Optional[StatsSink], session: SessionStore) -> None:
    """
    Best-effort: one failing player never blocks the others or the caller.
    Without a decided outcome nobody is counted as a winner.
    """
    if sink is None:
        return

    winner = session.outcome.winner if session.outcome else None
    for player in session.players.values():
        won = winner is not None and not player.is_host and faction(player.role) == winner
        try:
            await sink.record_game_result(player.id, player.role, won, player.is_host)
        except Exception:
            logger.warning("Failed to record stats for %s in %s", player.id, session.code, exc_info=True)
