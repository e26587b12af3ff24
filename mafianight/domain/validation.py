# mafianight/domain/validation.py
from __future__ import annotations

from typing import Optional

from mafianight.domain.errors import (
    NotHost,
    NotInSession,
    NotStarted,
    PlayerEliminated,
    PlayerNotFound,
    SessionEnded,
    SessionNotFound,
    WrongPhase,
    WrongRole,
)
from mafianight.domain.types import Phase, Role
from mafianight.store.models import PlayerStore, SessionStore


def is_host(session: SessionStore, user_id: Optional[str]) -> bool:
    """Check if user is the session host."""
    return user_id is not None and session.host_id == user_id


def require_session(session: Optional[SessionStore]) -> SessionStore:
    if session is None:
        raise SessionNotFound()
    return session


def require_host(session: SessionStore, user_id: str, message: Optional[str] = None) -> None:
    if not is_host(session, user_id):
        raise NotHost(message)


def require_not_ended(session: SessionStore) -> None:
    if session.status == "ended":
        raise SessionEnded()


def require_started(session: SessionStore) -> None:
    require_not_ended(session)
    if session.status != "started":
        raise NotStarted()


def require_phase(session: SessionStore, *phases: Phase) -> None:
    if session.current_phase not in phases:
        allowed = " or ".join(phases)
        raise WrongPhase(f"Only allowed during the {allowed} phase")


def require_actor(session: SessionStore, user_id: str, role: Optional[Role] = None) -> PlayerStore:
    """A living, non-host participant (optionally with a given role)."""
    player = session.players.get(user_id)
    if player is None or player.is_host:
        raise NotInSession()
    if player.eliminated:
        raise PlayerEliminated()
    if role is not None and player.role != role:
        raise WrongRole(f"Only the {role} can do that")
    return player


def require_target(session: SessionStore, target_id: str) -> PlayerStore:
    target = session.players.get(target_id)
    if target is None or target.is_host:
        raise PlayerNotFound("Target player not found")
    if target.eliminated:
        raise PlayerEliminated("Target player is already eliminated")
    return target
