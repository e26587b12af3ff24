# mafianight/domain/handlers/lobby.py
from __future__ import annotations

from typing import List, Optional, Tuple

from mafianight.domain import sessions
from mafianight.domain.handlers.snapshot import build_snapshot
from mafianight.domain.identity import Identity, require_identity
from mafianight.transport.protocols import (
    InCreateSession,
    InEndGame,
    InJoin,
    InLeave,
    InRemovePlayer,
    InSnapshot,
    InStartGame,
    OutGameEnded,
    OutGameStarted,
    OutgoingEvent,
    OutPlayerJoined,
    OutPlayerLeft,
    OutPlayerRemoved,
    OutSessionCreated,
)

# Returns: (to_sender, to_room)
Result = Tuple[List[OutgoingEvent], List[OutgoingEvent]]


async def handle_create_session(*, app, room_code: str, identity: Optional[Identity], msg: InCreateSession) -> Result:
    code = await sessions.create_session(
        repo=app.state.repo,
        identity=identity,
        total_players=msg.total_players,
        mafia_count=msg.mafia_count,
        detective_count=msg.detective_count,
        doctor_count=msg.doctor_count,
    )
    return [OutSessionCreated(room_code=code)], []


async def handle_join(*, app, room_code: str, identity: Optional[Identity], msg: InJoin) -> Result:
    identity = require_identity(identity)
    await sessions.join_session(repo=app.state.repo, code=room_code, identity=identity)
    ev = OutPlayerJoined(pid=identity.user_id, name=identity.display_name)
    return [ev], [ev]


async def handle_leave(*, app, room_code: str, identity: Optional[Identity], msg: InLeave) -> Result:
    identity = require_identity(identity)
    await sessions.leave_session(repo=app.state.repo, code=room_code, identity=identity)
    ev = OutPlayerLeft(pid=identity.user_id)
    return [ev], [ev]


async def handle_remove_player(*, app, room_code: str, identity: Optional[Identity], msg: InRemovePlayer) -> Result:
    await sessions.remove_player(repo=app.state.repo, code=room_code, identity=identity, target_id=msg.target)
    ev = OutPlayerRemoved(pid=msg.target)
    return [ev], [ev]


async def handle_start_game(*, app, room_code: str, identity: Optional[Identity], msg: InStartGame) -> Result:
    started = await sessions.start_session(repo=app.state.repo, code=room_code, identity=identity)
    ev = OutGameStarted(started_at=started.started_at or "")
    return [ev], [ev]


async def handle_end_game(*, app, room_code: str, identity: Optional[Identity], msg: InEndGame) -> Result:
    ended = await sessions.end_session(
        repo=app.state.repo,
        code=room_code,
        identity=identity,
        stats=app.state.stats,
    )
    ev = OutGameEnded(reason=ended.end_reason or "host_ended")
    return [ev], [ev]


async def handle_snapshot(*, app, room_code: str, identity: Optional[Identity], msg: InSnapshot) -> Result:
    """Pull a snapshot on demand (the push subscription covers the normal case)."""
    session = await sessions.get_session(repo=app.state.repo, code=room_code, stats=app.state.stats)
    viewer_id = identity.user_id if identity else None
    return [build_snapshot(session, viewer_id)], []
