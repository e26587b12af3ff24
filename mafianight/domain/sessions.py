# mafianight/domain/sessions.py
from __future__ import annotations

import logging
import random
from typing import Awaitable, Callable, List, Optional

from mafianight.domain.codes import MAX_CODE_ATTEMPTS, generate_code
from mafianight.domain.errors import (
    AlreadyJoined,
    AlreadyStarted,
    CannotJoinOwnSession,
    CodeGenerationExhausted,
    PlayerNotFound,
    SessionEnded,
    SessionFull,
    SessionNotFound,
    InsufficientPlayers,
    PermissionDenied,
)
from mafianight.domain.fsm import can_transition_to
from mafianight.domain.identity import Identity, require_identity
from mafianight.domain.roles import assign_roles, validate_settings
from mafianight.domain.stats import StatsSink, record_session_results
from mafianight.domain.types import EndReason, Role
from mafianight.domain.validation import (
    is_host,
    require_host,
    require_not_ended,
    require_session,
)
from mafianight.store.base import Unsubscribe
from mafianight.store.models import PlayerStore, SessionSettings, SessionStore
from mafianight.store.repo import SessionRepo
from mafianight.util.timeutil import iso_to_ts, now_ts, ts_to_iso

logger = logging.getLogger(__name__)

# Sessions end by themselves this long after creation (checked lazily by readers).
GAME_DURATION_SEC = 2 * 60 * 60

SessionCallback = Callable[[Optional[SessionStore]], Awaitable[None]]


class _Unchanged(Exception):
    """Abort a conditional write: nothing to do."""


# -------------------------
# Create / join / leave
# -------------------------

async def create_session(
    *,
    repo: SessionRepo,
    identity: Optional[Identity],
    total_players: int,
    mafia_count: int,
    detective_count: int,
    doctor_count: int,
    rng: Optional[random.Random] = None,
) -> str:
    identity = require_identity(identity)
    settings = SessionSettings(
        total_players=total_players,
        mafia_count=mafia_count,
        detective_count=detective_count,
        doctor_count=doctor_count,
    )
    validate_settings(settings)

    created_at = ts_to_iso(now_ts())
    host = PlayerStore(
        id=identity.user_id,
        name=identity.display_name,
        is_host=True,
        joined_at=created_at,
    )

    # generate a unique session code
    for _ in range(MAX_CODE_ATTEMPTS):
        code = generate_code(rng)
        session = SessionStore(
            code=code,
            host_id=identity.user_id,
            host_name=identity.display_name,
            status="waiting",
            created_at=created_at,
            settings=settings,
            players={identity.user_id: host},
        )
        if await repo.claim_session(session):
            logger.info("Session %s created by %s (%s)", code, identity.user_id, settings.model_dump())
            return code
        logger.info("Session code %s already live, drawing another", code)

    raise CodeGenerationExhausted()


async def join_session(*, repo: SessionRepo, code: str, identity: Optional[Identity]) -> SessionStore:
    """
    Admit a player. Validation and write are one conditional write,
    so the player cap holds under concurrent joins.
    Returns the snapshot observed at validation time.
    """
    identity = require_identity(identity)
    uid = identity.user_id
    joined_at = ts_to_iso(now_ts())
    observed: dict = {}

    def _admit(session: Optional[SessionStore]) -> SessionStore:
        session = require_session(session)
        if session.status != "waiting":
            raise AlreadyStarted()
        if is_host(session, uid):
            raise CannotJoinOwnSession()
        if uid in session.players:
            raise AlreadyJoined()
        if len(session.non_host_players()) >= session.settings.total_players:
            raise SessionFull()

        observed["session"] = session.model_copy(deep=True)
        session.players[uid] = PlayerStore(
            id=uid,
            name=identity.display_name,
            is_host=False,
            joined_at=joined_at,
        )
        return session

    await repo.transact_session(code, _admit)
    logger.info("Player %s joined session %s", uid, code)
    return observed["session"]


def _without_member(session: Optional[SessionStore], pid: str) -> Optional[SessionStore]:
    """Session after pid leaves; None means delete the session."""
    if session is None or session.status == "ended":
        # gone already, or kept for history
        raise _Unchanged()
    if is_host(session, pid):
        return None
    if pid not in session.players:
        raise _Unchanged()
    del session.players[pid]
    if not session.non_host_players():
        return None
    return session


async def leave_session(*, repo: SessionRepo, code: str, identity: Optional[Identity]) -> None:
    """
    Host leaving deletes the session. A player leaving removes its entry;
    the session is deleted once no players remain. Idempotent.
    """
    identity = require_identity(identity)
    uid = identity.user_id

    try:
        remaining = await repo.transact_session(code, lambda s: _without_member(s, uid))
    except _Unchanged:
        return

    if remaining is None:
        logger.info("Session %s removed after %s left", code, uid)
    else:
        logger.info("Player %s left session %s", uid, code)


async def remove_player(
    *,
    repo: SessionRepo,
    code: str,
    identity: Optional[Identity],
    target_id: str,
) -> None:
    """Host-only forced leave."""
    identity = require_identity(identity)
    session = require_session(await repo.get_session(code))
    require_host(session, identity.user_id, "Only the host can remove players")
    require_not_ended(session)

    target = session.players.get(target_id)
    if target is None or target.is_host:
        raise PlayerNotFound()

    try:
        await repo.transact_session(code, lambda s: _without_member(s, target_id))
    except _Unchanged:
        return
    logger.info("Host removed %s from session %s", target_id, code)


# -------------------------
# Start / end
# -------------------------

async def start_session(
    *,
    repo: SessionRepo,
    code: str,
    identity: Optional[Identity],
    rng: Optional[random.Random] = None,
) -> SessionStore:
    identity = require_identity(identity)
    started_at = ts_to_iso(now_ts())

    def _start(session: Optional[SessionStore]) -> SessionStore:
        session = require_session(session)
        require_host(session, identity.user_id, "Only the host can start the game")
        require_not_ended(session)
        if not can_transition_to(session.status, "started"):
            raise AlreadyStarted()

        players = session.non_host_players()
        if len(players) < session.settings.total_players:
            raise InsufficientPlayers()

        for pid, role in assign_roles(players, session.settings, rng).items():
            session.players[pid].role = role
        session.status = "started"
        session.started_at = started_at
        return session

    started = await repo.transact_session(code, _start)
    logger.info("Session %s started with %d players", code, len(started.non_host_players()))
    return started


async def end_session(
    *,
    repo: SessionRepo,
    code: str,
    identity: Optional[Identity],
    reason: EndReason = "host_ended",
    stats: Optional[StatsSink] = None,
) -> SessionStore:
    """
    host_ended needs the host; timeout is issued by the expiry check and skips it.
    Stats are recorded after the transition and never fail it.
    """
    uid = None
    if reason == "host_ended":
        uid = require_identity(identity).user_id
    ended_at = ts_to_iso(now_ts())

    def _end(session: Optional[SessionStore]) -> SessionStore:
        session = require_session(session)
        if reason == "host_ended":
            require_host(session, uid, "Only the host can end the game")
        if not can_transition_to(session.status, "ended"):
            raise SessionEnded()
        session.status = "ended"
        session.ended_at = ended_at
        session.end_reason = reason
        return session

    ended = await repo.transact_session(code, _end)
    logger.info("Session %s ended (%s)", code, reason)

    await record_session_results(stats, ended)
    return ended


# -------------------------
# Lazy expiry
# -------------------------

def is_expired(session: SessionStore, ts: float, duration_sec: int = GAME_DURATION_SEC) -> bool:
    return ts - iso_to_ts(session.created_at) >= duration_sec


async def _expire(repo: SessionRepo, code: str, stats: Optional[StatsSink]) -> Optional[SessionStore]:
    """
    Timeout transition. Returns the ended session, or None when the write
    did not happen (the caller keeps its snapshot and retries on the next tick).
    """
    try:
        return await end_session(repo=repo, code=code, identity=None, reason="timeout", stats=stats)
    except SessionEnded:
        # another client ended it first
        return await repo.get_session(code)
    except SessionNotFound:
        return None
    except Exception:
        logger.exception("Expiry check could not end session %s", code)
        return None


async def check_expiry(*, repo: SessionRepo, code: str, stats: Optional[StatsSink] = None) -> bool:
    session = await repo.get_session(code)
    if session is None:
        return False
    expired = is_expired(session, now_ts())
    if expired and session.status != "ended":
        await _expire(repo, code, stats)
    return expired


# -------------------------
# Reads
# -------------------------

async def get_session(*, repo: SessionRepo, code: str, stats: Optional[StatsSink] = None) -> SessionStore:
    session = require_session(await repo.get_session(code))
    if session.status != "ended" and is_expired(session, now_ts()):
        session = await _expire(repo, code, stats) or session
    return session


async def subscribe(
    *,
    repo: SessionRepo,
    code: str,
    on_change: SessionCallback,
    stats: Optional[StatsSink] = None,
) -> Unsubscribe:
    """
    Live snapshots of one session. Each emission runs the expiry check first.
    None means the session no longer exists.
    """
    state: dict = {"delivered": False, "last": None}

    async def _deliver(session: Optional[SessionStore]) -> None:
        if session is not None and session.status != "ended" and is_expired(session, now_ts()):
            session = await _expire(repo, code, stats) or session

        if state["delivered"] and session == state["last"]:
            return
        state["delivered"] = True
        state["last"] = session
        await on_change(session)

    return await repo.subscribe_session(code, _deliver)


def _newest_first(sessions: List[SessionStore]) -> List[SessionStore]:
    return sorted(sessions, key=lambda s: iso_to_ts(s.created_at), reverse=True)


async def list_sessions_for_user(*, repo: SessionRepo, user_id: str) -> List[SessionStore]:
    """History query. Scans every session."""
    sessions = await repo.list_sessions()
    mine = [s for s in sessions if s.host_id == user_id or user_id in s.players]
    return _newest_first(mine)


async def get_active_session_for_user(*, repo: SessionRepo, user_id: str) -> Optional[SessionStore]:
    sessions = await list_sessions_for_user(repo=repo, user_id=user_id)
    for s in sessions:
        if s.status != "ended":
            return s
    return None


async def get_player_role(
    *,
    repo: SessionRepo,
    code: str,
    user_id: str,
    viewer_id: str,
) -> Optional[Role]:
    """
    Players see their own role and the host sees everyone's;
    anyone else only once the game has ended.
    """
    session = await repo.get_session(code)
    if session is None:
        return None
    player = session.players.get(user_id)
    if player is None:
        return None
    if viewer_id != user_id and not is_host(session, viewer_id) and session.status != "ended":
        raise PermissionDenied("Roles stay secret until the game ends")
    return player.role
