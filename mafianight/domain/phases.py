# mafianight/domain/phases.py
from __future__ import annotations

import logging
from typing import Optional

from mafianight.domain.errors import NotInSession
from mafianight.domain.fsm import next_phase, phase_duration
from mafianight.domain.identity import Identity, require_identity
from mafianight.domain.types import Phase, Winner
from mafianight.domain.validation import require_host, require_session, require_started
from mafianight.store.models import PhaseMark, SessionStore, Votes
from mafianight.store.repo import SessionRepo
from mafianight.util.timeutil import iso_to_ts, now_ts, ts_to_iso

logger = logging.getLogger(__name__)


class _NotDue(Exception):
    """Phase timer has not run out (or someone already advanced it)."""


def _enter_phase(session: SessionStore, phase: Phase, ts: int, duration_sec: Optional[int]) -> SessionStore:
    """
    Every transition clears both vote pools and the doctors' protections.
    The end marker is absolute so every client counts down to the same instant.
    """
    duration = phase_duration(phase, duration_sec)
    started_at = ts_to_iso(ts)
    ends_at = ts_to_iso(ts + duration)

    session.current_phase = phase
    session.phase_no += 1
    session.phase_started_at = started_at
    session.phase_ends_at = ends_at
    session.phase_history[phase] = PhaseMark(started_at=started_at, ends_at=ends_at)
    session.votes = Votes()
    session.protected_players = {}
    return session


def seconds_remaining(session: SessionStore, ts: float) -> int:
    if not session.phase_ends_at:
        return 0
    return max(0, int(iso_to_ts(session.phase_ends_at) - ts))


async def set_phase(
    *,
    repo: SessionRepo,
    code: str,
    identity: Optional[Identity],
    phase: Phase,
    duration_sec: Optional[int] = None,
) -> SessionStore:
    """Host jumps to any phase (manual override)."""
    identity = require_identity(identity)
    ts = now_ts()

    def _set(session: Optional[SessionStore]) -> SessionStore:
        session = require_session(session)
        require_host(session, identity.user_id, "Only the host can change the phase")
        require_started(session)
        return _enter_phase(session, phase, ts, duration_sec)

    updated = await repo.transact_session(code, _set)
    logger.info("Session %s phase -> %s (#%d)", code, phase, updated.phase_no)
    return updated


async def advance_phase(
    *,
    repo: SessionRepo,
    code: str,
    identity: Optional[Identity],
    duration_sec: Optional[int] = None,
) -> SessionStore:
    """Host moves to the canonical next phase."""
    identity = require_identity(identity)
    ts = now_ts()

    def _advance(session: Optional[SessionStore]) -> SessionStore:
        session = require_session(session)
        require_host(session, identity.user_id, "Only the host can advance the phase")
        require_started(session)
        return _enter_phase(session, next_phase(session.current_phase), ts, duration_sec)

    updated = await repo.transact_session(code, _advance)
    logger.info("Session %s phase -> %s (#%d)", code, updated.current_phase, updated.phase_no)
    return updated


async def tick_phase(*, repo: SessionRepo, code: str, identity: Optional[Identity]) -> Optional[SessionStore]:
    """
    Countdown reached zero on some client. Any participant may send it;
    the phase advances once, however many clients tick.
    Returns the updated session, or None if nothing was due.
    """
    identity = require_identity(identity)
    ts = now_ts()

    def _tick(session: Optional[SessionStore]) -> SessionStore:
        session = require_session(session)
        if identity.user_id not in session.players:
            raise NotInSession()
        if session.status != "started" or not session.current_phase or not session.phase_ends_at:
            raise _NotDue()
        if ts < iso_to_ts(session.phase_ends_at):
            raise _NotDue()
        return _enter_phase(session, next_phase(session.current_phase), ts, None)

    try:
        updated = await repo.transact_session(code, _tick)
    except _NotDue:
        return None
    logger.info("Session %s timer -> %s (#%d)", code, updated.current_phase, updated.phase_no)
    return updated


def evaluate_outcome(session: SessionStore) -> Optional[Winner]:
    """
    civilians: no Mafia left alive. mafia: living Mafia >= everyone else alive.
    None while roles are unassigned or the game is undecided.
    """
    players = [p for p in session.non_host_players() if p.role is not None]
    if not players:
        return None

    alive = [p for p in players if not p.eliminated]
    mafia = sum(1 for p in alive if p.role == "Mafia")
    others = len(alive) - mafia
    if mafia == 0:
        return "civilians"
    if mafia >= others:
        return "mafia"
    return None
