# mafianight/domain/actions.py
from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, Optional

from pydantic import BaseModel

from mafianight.domain.identity import Identity, require_identity
from mafianight.domain.phases import evaluate_outcome
from mafianight.domain.types import EliminationReason, VotePool, Winner
from mafianight.domain.validation import (
    require_actor,
    require_host,
    require_phase,
    require_session,
    require_started,
    require_target,
)
from mafianight.store.models import Elimination, Investigation, Outcome, SessionStore
from mafianight.store.repo import SessionRepo
from mafianight.util.timeutil import now_iso

logger = logging.getLogger(__name__)


class Resolution(BaseModel):
    pool: VotePool
    target_id: Optional[str] = None     # plurality pick, None on no votes or a tie
    eliminated: bool = False
    protected: bool = False
    winner: Optional[Winner] = None


def _started(session: Optional[SessionStore]) -> SessionStore:
    session = require_session(session)
    require_started(session)
    return session


# -------------------------
# Player actions
# -------------------------
# Every action is a conditional write on the session document: the guards run
# against the committed state, and a session deleted meanwhile stays deleted.

async def submit_vote(
    *,
    repo: SessionRepo,
    code: str,
    identity: Optional[Identity],
    target_id: str,
    pool: VotePool,
) -> None:
    """
    Mafia vote at night (Mafia only), civilian vote during voting (any living player).
    Re-voting overwrites the voter's previous pick.
    """
    identity = require_identity(identity)

    def _vote(session: Optional[SessionStore]) -> SessionStore:
        session = _started(session)
        if pool == "mafia":
            require_phase(session, "night")
            require_actor(session, identity.user_id, role="Mafia")
        else:
            require_phase(session, "voting")
            require_actor(session, identity.user_id)
        require_target(session, target_id)
        getattr(session.votes, pool)[identity.user_id] = target_id
        return session

    await repo.transact_session(code, _vote)


async def investigate(
    *,
    repo: SessionRepo,
    code: str,
    identity: Optional[Identity],
    target_id: str,
) -> bool:
    identity = require_identity(identity)
    found: dict = {}

    def _investigate(session: Optional[SessionStore]) -> SessionStore:
        session = _started(session)
        require_phase(session, "night")
        require_actor(session, identity.user_id, role="Detective")
        target = require_target(session, target_id)

        found["is_mafia"] = target.role == "Mafia"
        session.investigation_results[identity.user_id] = Investigation(
            target_id=target_id,
            is_mafia=found["is_mafia"],
            investigated_at=now_iso(),
        )
        return session

    await repo.transact_session(code, _investigate)
    return found["is_mafia"]


async def protect(
    *,
    repo: SessionRepo,
    code: str,
    identity: Optional[Identity],
    target_id: str,
) -> None:
    """Protection only counts for the current night; it does not resolve anything by itself."""
    identity = require_identity(identity)

    def _protect(session: Optional[SessionStore]) -> SessionStore:
        session = _started(session)
        require_phase(session, "night")
        require_actor(session, identity.user_id, role="Doctor")
        require_target(session, target_id)
        session.protected_players[identity.user_id] = target_id
        return session

    await repo.transact_session(code, _protect)


# -------------------------
# Host resolution
# -------------------------

def plurality(votes: Dict[str, str]) -> Optional[str]:
    """
    Most-voted target. A tie for first place picks nobody;
    there is no tie-break by vote order.
    """
    ranked = Counter(votes.values()).most_common(2)
    if not ranked:
        return None
    if len(ranked) > 1 and ranked[0][1] == ranked[1][1]:
        return None
    return ranked[0][0]


def _tally(
    session: SessionStore,
    pool: VotePool,
    reason: EliminationReason,
    protected_ids: set,
) -> Resolution:
    """Apply one pool's result to session in place."""
    votes = session.votes.mafia if pool == "mafia" else session.votes.civilian
    target_id = plurality(votes)
    target = session.players.get(target_id) if target_id else None

    res = Resolution(pool=pool, target_id=target_id)
    if target is None or target.eliminated:
        return res
    if target_id in protected_ids:
        res.protected = True
        return res

    ts = now_iso()
    target.eliminated = True
    session.eliminated_players[target_id] = Elimination(reason=reason, eliminated_at=ts)

    winner = evaluate_outcome(session)
    if winner is not None:
        session.outcome = Outcome(winner=winner, decided_at=ts)

    res.eliminated = True
    res.winner = winner
    return res


async def _resolve(
    repo: SessionRepo,
    code: str,
    identity: Optional[Identity],
    pool: VotePool,
    reason: EliminationReason,
) -> Resolution:
    identity = require_identity(identity)
    result: dict = {}

    def _apply(session: Optional[SessionStore]) -> SessionStore:
        session = _started(session)
        if pool == "mafia":
            require_host(session, identity.user_id, "Only the host can process night results")
            require_phase(session, "night")
            protected_ids = set(session.protected_players.values())
        else:
            require_host(session, identity.user_id, "Only the host can process voting results")
            require_phase(session, "voting")
            protected_ids = set()
        result["res"] = _tally(session, pool, reason, protected_ids)
        return session

    await repo.transact_session(code, _apply)
    res = result["res"]
    if res.eliminated:
        logger.info("Session %s: %s eliminated by %s vote", code, res.target_id, pool)
    return res


async def resolve_night(*, repo: SessionRepo, code: str, identity: Optional[Identity]) -> Resolution:
    """Tally the Mafia's votes; a doctor-protected target survives."""
    return await _resolve(repo, code, identity, "mafia", "mafia")


async def resolve_day(*, repo: SessionRepo, code: str, identity: Optional[Identity]) -> Resolution:
    """Tally the town's votes. Protections do not apply."""
    return await _resolve(repo, code, identity, "civilian", "voting")
