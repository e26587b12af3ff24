# mafianight/transport/admin.py
from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/sessions")
async def list_sessions(request: Request):
    """
    List all stored sessions (debug/admin).
    """
    repo = request.app.state.repo
    wsman = request.app.state.wsman

    rows = []
    for s in sorted(await repo.list_sessions(), key=lambda s: s.code):
        rows.append(
            {
                "code": s.code,
                "host_id": s.host_id,
                "status": s.status,
                "phase": s.current_phase,
                "phase_no": s.phase_no,
                "players": len(s.non_host_players()),
                "total_players": s.settings.total_players,
                "connected": await wsman.room_size(s.code),
                "created_at": s.created_at,
            }
        )

    return {"sessions": rows}


@router.post("/sessions/{code}/close")
async def close_session(code: str, request: Request):
    """
    Force close a session (debug/admin). Deletes the document and closes websockets.
    """
    repo = request.app.state.repo
    wsman = request.app.state.wsman

    if not await repo.session_exists(code):
        raise HTTPException(status_code=404, detail="Session not found")

    await repo.delete_session(code)
    await wsman.close_room(code, code=4000, reason="admin_close")

    return {"ok": True, "code": code}
