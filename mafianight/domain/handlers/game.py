# mafianight/domain/handlers/game.py
from __future__ import annotations

from typing import List, Optional, Tuple

from mafianight.domain import actions, phases
from mafianight.domain.identity import Identity
from mafianight.store.models import SessionStore
from mafianight.transport.protocols import (
    InAdvancePhase,
    InInvestigate,
    InPhaseTick,
    InProtect,
    InResolveDay,
    InResolveNight,
    InSetPhase,
    InVote,
    OutActionAccepted,
    OutgoingEvent,
    OutInvestigationResult,
    OutPhaseChanged,
    OutResolution,
)

Result = Tuple[List[OutgoingEvent], List[OutgoingEvent]]


def _phase_changed(session: SessionStore) -> OutPhaseChanged:
    return OutPhaseChanged(
        phase=session.current_phase,
        phase_no=session.phase_no,
        ends_at=session.phase_ends_at or "",
    )


def _resolution_event(res: actions.Resolution) -> OutResolution:
    return OutResolution(
        pool=res.pool,
        target=res.target_id,
        eliminated=res.eliminated,
        protected=res.protected,
        winner=res.winner,
    )


# ---- Phases ----

async def handle_set_phase(*, app, room_code: str, identity: Optional[Identity], msg: InSetPhase) -> Result:
    updated = await phases.set_phase(
        repo=app.state.repo,
        code=room_code,
        identity=identity,
        phase=msg.phase,
        duration_sec=msg.duration_sec,
    )
    ev = _phase_changed(updated)
    return [ev], [ev]


async def handle_advance_phase(*, app, room_code: str, identity: Optional[Identity], msg: InAdvancePhase) -> Result:
    updated = await phases.advance_phase(
        repo=app.state.repo,
        code=room_code,
        identity=identity,
        duration_sec=msg.duration_sec,
    )
    ev = _phase_changed(updated)
    return [ev], [ev]


async def handle_phase_tick(*, app, room_code: str, identity: Optional[Identity], msg: InPhaseTick) -> Result:
    updated = await phases.tick_phase(repo=app.state.repo, code=room_code, identity=identity)
    if updated is None:
        return [], []
    ev = _phase_changed(updated)
    return [ev], [ev]


# ---- Role actions ----

async def handle_vote(*, app, room_code: str, identity: Optional[Identity], msg: InVote) -> Result:
    await actions.submit_vote(
        repo=app.state.repo,
        code=room_code,
        identity=identity,
        target_id=msg.target,
        pool=msg.pool,
    )
    return [OutActionAccepted(action=f"vote:{msg.pool}", target=msg.target)], []


async def handle_investigate(*, app, room_code: str, identity: Optional[Identity], msg: InInvestigate) -> Result:
    is_mafia = await actions.investigate(
        repo=app.state.repo,
        code=room_code,
        identity=identity,
        target_id=msg.target,
    )
    # detective only; never broadcast
    return [OutInvestigationResult(target=msg.target, is_mafia=is_mafia)], []


async def handle_protect(*, app, room_code: str, identity: Optional[Identity], msg: InProtect) -> Result:
    await actions.protect(repo=app.state.repo, code=room_code, identity=identity, target_id=msg.target)
    return [OutActionAccepted(action="protect", target=msg.target)], []


async def handle_resolve_night(*, app, room_code: str, identity: Optional[Identity], msg: InResolveNight) -> Result:
    res = await actions.resolve_night(repo=app.state.repo, code=room_code, identity=identity)
    ev = _resolution_event(res)
    return [ev], [ev]


async def handle_resolve_day(*, app, room_code: str, identity: Optional[Identity], msg: InResolveDay) -> Result:
    res = await actions.resolve_day(repo=app.state.repo, code=room_code, identity=identity)
    ev = _resolution_event(res)
    return [ev], [ev]
