# mafianight/store/models.py
from __future__ import annotations

from typing import Dict, Optional
from pydantic import BaseModel, Field

from mafianight.domain.types import (
    EliminationReason,
    EndReason,
    Phase,
    Role,
    Status,
    Winner,
)


class PlayerStore(BaseModel):
    id: str
    name: str
    is_host: bool = False
    joined_at: str
    role: Optional[Role] = None         # assigned at start, never for the host
    eliminated: bool = False


class SessionSettings(BaseModel):
    total_players: int                  # host excluded
    mafia_count: int
    detective_count: int = 0
    doctor_count: int = 0

    @property
    def civilian_count(self) -> int:
        return self.total_players - self.mafia_count - self.detective_count - self.doctor_count


class Votes(BaseModel):
    mafia: Dict[str, str] = Field(default_factory=dict)      # voter -> target
    civilian: Dict[str, str] = Field(default_factory=dict)


class Investigation(BaseModel):
    target_id: str
    is_mafia: bool
    investigated_at: str


class Elimination(BaseModel):
    reason: EliminationReason
    eliminated_at: str


class PhaseMark(BaseModel):
    started_at: str
    ends_at: str


class Outcome(BaseModel):
    winner: Winner
    decided_at: str


class SessionStore(BaseModel):
    code: str
    host_id: str
    host_name: str
    status: Status = "waiting"
    created_at: str
    started_at: Optional[str] = None
    ended_at: Optional[str] = None
    end_reason: Optional[EndReason] = None
    settings: SessionSettings
    players: Dict[str, PlayerStore] = Field(default_factory=dict)

    current_phase: Optional[Phase] = None
    phase_no: int = 0
    phase_started_at: Optional[str] = None
    phase_ends_at: Optional[str] = None
    phase_history: Dict[str, PhaseMark] = Field(default_factory=dict)

    eliminated_players: Dict[str, Elimination] = Field(default_factory=dict)
    votes: Votes = Field(default_factory=Votes)
    investigation_results: Dict[str, Investigation] = Field(default_factory=dict)
    protected_players: Dict[str, str] = Field(default_factory=dict)   # doctor -> target
    outcome: Optional[Outcome] = None

    def non_host_players(self) -> list[PlayerStore]:
        # stable order: joined_at
        players = [p for p in self.players.values() if not p.is_host]
        players.sort(key=lambda p: (p.joined_at, p.id))
        return players


class RoleStats(BaseModel):
    civilian: int = 0
    mafia: int = 0
    detective: int = 0
    doctor: int = 0


class UserStats(BaseModel):
    games_played: int = 0
    games_won: int = 0
    games_hosted: int = 0
    role_stats: RoleStats = Field(default_factory=RoleStats)
