# mafianight/transport/protocols.py
from __future__ import annotations

from typing import Any, Dict, Literal, Optional, Union
from pydantic import BaseModel, Field, ValidationError

from mafianight.domain.types import EndReason, Phase, VotePool


# =========================
# Incoming (Client -> Server)
# =========================

class InBase(BaseModel):
    type: str


# ---- Connection / lifecycle ----

class InAuth(InBase):
    """Identity issued by the external auth provider for this connection."""
    type: Literal["auth"] = "auth"
    user_id: str = Field(min_length=1, max_length=128)
    display_name: str = Field(min_length=1, max_length=40)
    token: str = Field(min_length=1, max_length=256)


class InCreateSession(InBase):
    type: Literal["create_session"] = "create_session"
    total_players: int = Field(default=6, ge=4, le=12)
    mafia_count: int = Field(default=2, ge=1)
    detective_count: int = Field(default=1, ge=0)
    doctor_count: int = Field(default=1, ge=0)


class InJoin(InBase):
    type: Literal["join"] = "join"


class InLeave(InBase):
    type: Literal["leave"] = "leave"


class InSnapshot(InBase):
    type: Literal["snapshot"] = "snapshot"


class InRemovePlayer(InBase):
    type: Literal["remove_player"] = "remove_player"
    target: str


class InStartGame(InBase):
    type: Literal["start_game"] = "start_game"


class InEndGame(InBase):
    type: Literal["end_game"] = "end_game"


# ---- Phases ----

class InSetPhase(InBase):
    type: Literal["set_phase"] = "set_phase"
    phase: Phase
    duration_sec: Optional[int] = Field(default=None, ge=10, le=1800)


class InAdvancePhase(InBase):
    type: Literal["advance_phase"] = "advance_phase"
    duration_sec: Optional[int] = Field(default=None, ge=10, le=1800)


class InPhaseTick(InBase):
    type: Literal["phase_tick"] = "phase_tick"


# ---- Role actions ----

class InVote(InBase):
    type: Literal["vote"] = "vote"
    pool: VotePool
    target: str


class InInvestigate(InBase):
    type: Literal["investigate"] = "investigate"
    target: str


class InProtect(InBase):
    type: Literal["protect"] = "protect"
    target: str


class InResolveNight(InBase):
    type: Literal["resolve_night"] = "resolve_night"


class InResolveDay(InBase):
    type: Literal["resolve_day"] = "resolve_day"


IncomingMessage = Union[
    InAuth,
    InCreateSession,
    InJoin,
    InLeave,
    InSnapshot,
    InRemovePlayer,
    InStartGame,
    InEndGame,
    InSetPhase,
    InAdvancePhase,
    InPhaseTick,
    InVote,
    InInvestigate,
    InProtect,
    InResolveNight,
    InResolveDay,
]


# =========================
# Outgoing (Server -> Client)
# =========================

class OutBase(BaseModel):
    type: str


class OutError(OutBase):
    type: Literal["error"] = "error"
    code: str
    message: str


class OutHello(OutBase):
    type: Literal["hello"] = "hello"
    room_code: str


class OutAuthed(OutBase):
    type: Literal["authed"] = "authed"
    user_id: str


class OutSessionCreated(OutBase):
    type: Literal["session_created"] = "session_created"
    room_code: str


class OutSessionSnapshot(OutBase):
    type: Literal["session_snapshot"] = "session_snapshot"
    session: Dict[str, Any]
    seconds_remaining: int = 0
    server_ts: int


class OutSessionClosed(OutBase):
    type: Literal["session_closed"] = "session_closed"
    room_code: str


class OutPlayerJoined(OutBase):
    type: Literal["player_joined"] = "player_joined"
    pid: str
    name: str


class OutPlayerLeft(OutBase):
    type: Literal["player_left"] = "player_left"
    pid: str


class OutPlayerRemoved(OutBase):
    type: Literal["player_removed"] = "player_removed"
    pid: str


class OutGameStarted(OutBase):
    type: Literal["game_started"] = "game_started"
    started_at: str


class OutGameEnded(OutBase):
    type: Literal["game_ended"] = "game_ended"
    reason: EndReason


class OutPhaseChanged(OutBase):
    type: Literal["phase_changed"] = "phase_changed"
    phase: Phase
    phase_no: int
    ends_at: str


class OutActionAccepted(OutBase):
    type: Literal["action_accepted"] = "action_accepted"
    action: str
    target: str


class OutInvestigationResult(OutBase):
    type: Literal["investigation_result"] = "investigation_result"
    target: str
    is_mafia: bool


class OutResolution(OutBase):
    type: Literal["resolution"] = "resolution"
    pool: VotePool
    target: Optional[str] = None
    eliminated: bool
    protected: bool = False
    winner: Optional[str] = None


OutgoingEvent = Union[
    OutError,
    OutHello,
    OutAuthed,
    OutSessionCreated,
    OutSessionSnapshot,
    OutSessionClosed,
    OutPlayerJoined,
    OutPlayerLeft,
    OutPlayerRemoved,
    OutGameStarted,
    OutGameEnded,
    OutPhaseChanged,
    OutActionAccepted,
    OutInvestigationResult,
    OutResolution,
]


# =========================
# Parser helpers
# =========================

_INCOMING_BY_TYPE = {
    "auth": InAuth,
    "create_session": InCreateSession,
    "join": InJoin,
    "leave": InLeave,
    "snapshot": InSnapshot,
    "remove_player": InRemovePlayer,
    "start_game": InStartGame,
    "end_game": InEndGame,
    "set_phase": InSetPhase,
    "advance_phase": InAdvancePhase,
    "phase_tick": InPhaseTick,
    "vote": InVote,
    "investigate": InInvestigate,
    "protect": InProtect,
    "resolve_night": InResolveNight,
    "resolve_day": InResolveDay,
}


def parse_incoming(payload: Dict[str, Any]) -> IncomingMessage:
    """
    Convert raw dict -> validated message model.
    Raises ValidationError if invalid.
    """
    t = payload.get("type")
    if not isinstance(t, str):
        raise ValidationError.from_exception_data(
            title="IncomingMessage",
            line_errors=[{"loc": ("type",), "msg": "Missing/invalid type", "type": "value_error"}],
        )

    cls = _INCOMING_BY_TYPE.get(t)
    if cls is None:
        raise ValidationError.from_exception_data(
            title="IncomingMessage",
            line_errors=[{"loc": ("type",), "msg": f"Unknown message type: {t}", "type": "value_error"}],
        )

    return cls.model_validate(payload)

