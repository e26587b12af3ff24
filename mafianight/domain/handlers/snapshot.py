# mafianight/domain/handlers/snapshot.py
from __future__ import annotations

from typing import Any, Dict, Optional

from mafianight.domain.phases import seconds_remaining
from mafianight.store.models import SessionStore
from mafianight.transport.protocols import OutSessionSnapshot
from mafianight.util.timeutil import now_ts


def _should_show_role(*, session: SessionStore, viewer_id: Optional[str], target_id: str) -> bool:
    """
    Roles stay secret from other players while the game runs.
    Exceptions: your own role, eliminated players, and Mafia see each other.
    """
    if viewer_id is not None and viewer_id == target_id:
        return True
    target = session.players.get(target_id)
    if target is None or target.role is None:
        return False
    if target.eliminated:
        return True
    viewer = session.players.get(viewer_id) if viewer_id else None
    return viewer is not None and viewer.role == "Mafia" and target.role == "Mafia"


def redact_session(session: SessionStore, viewer_id: Optional[str]) -> Dict[str, Any]:
    data = session.model_dump(mode="json", exclude_none=True)

    # host moderates and sees everything; once ended, nothing is secret
    if session.status == "ended" or (viewer_id is not None and viewer_id == session.host_id):
        return data

    for pid, player in data.get("players", {}).items():
        if not _should_show_role(session=session, viewer_id=viewer_id, target_id=pid):
            player.pop("role", None)

    viewer = session.players.get(viewer_id) if viewer_id else None
    if viewer is None or viewer.role != "Mafia":
        data["votes"]["mafia"] = {}

    data["investigation_results"] = {
        k: v for k, v in data.get("investigation_results", {}).items() if k == viewer_id
    }
    data["protected_players"] = {
        k: v for k, v in data.get("protected_players", {}).items() if k == viewer_id
    }
    return data


def build_snapshot(session: SessionStore, viewer_id: Optional[str]) -> OutSessionSnapshot:
    ts = now_ts()
    return OutSessionSnapshot(
        session=redact_session(session, viewer_id),
        seconds_remaining=seconds_remaining(session, ts),
        server_ts=ts,
    )
