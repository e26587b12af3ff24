# mafianight/transport/http.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from mafianight.domain import sessions
from mafianight.domain.errors import PermissionDenied
from mafianight.domain.identity import verify_token
from mafianight.settings import get_settings
from mafianight.store.models import SessionStore

router = APIRouter(prefix="/users", tags=["users"])


def verified_caller(
    x_user_id: str = Header(...),
    authorization: str = Header(...),
) -> str:
    """User id of the caller, checked against its signed bearer token."""
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not verify_token(x_user_id, token.strip(), get_settings().AUTH_SECRET):
        raise HTTPException(status_code=401, detail="Sign-in could not be verified")
    return x_user_id


def _summary(session: SessionStore, user_id: str) -> Dict[str, Any]:
    me = session.players.get(user_id)
    return {
        "code": session.code,
        "host_name": session.host_name,
        "status": session.status,
        "created_at": session.created_at,
        "started_at": session.started_at,
        "ended_at": session.ended_at,
        "end_reason": session.end_reason,
        "players": len(session.non_host_players()),
        "total_players": session.settings.total_players,
        "is_host": session.host_id == user_id,
        # own role is only revealed here once the game is over
        "role": me.role if me is not None and session.status == "ended" else None,
        "winner": session.outcome.winner if session.outcome else None,
    }


@router.get("/{user_id}/sessions")
async def list_user_sessions(user_id: str, request: Request):
    """Game history, newest first."""
    found = await sessions.list_sessions_for_user(repo=request.app.state.repo, user_id=user_id)
    return {"sessions": [_summary(s, user_id) for s in found]}


@router.get("/{user_id}/active")
async def active_user_session(user_id: str, request: Request):
    found = await sessions.get_active_session_for_user(repo=request.app.state.repo, user_id=user_id)
    return {"session": _summary(found, user_id) if found else None}


@router.get("/{user_id}/stats")
async def user_stats(user_id: str, request: Request):
    stats = await request.app.state.repo.get_user_stats(user_id)
    return {"user_id": user_id, "stats": stats.model_dump()}


@router.get("/{user_id}/sessions/{code}/role")
async def user_role(user_id: str, code: str, request: Request, caller: str = Depends(verified_caller)):
    """
    A player's role in one game (None before start or for the host).
    Only that player and the host may ask while the game is running.
    """
    try:
        role = await sessions.get_player_role(
            repo=request.app.state.repo,
            code=code,
            user_id=user_id,
            viewer_id=caller,
        )
    except PermissionDenied as e:
        raise HTTPException(status_code=403, detail=e.message)
    return {"code": code, "role": role}
