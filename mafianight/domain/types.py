# mafianight/domain/types.py
from __future__ import annotations

from typing import Literal

Status = Literal["waiting", "started", "ended"]
Phase = Literal["preparation", "day", "voting", "night", "results"]
Role = Literal["Mafia", "Detective", "Doctor", "Civilian"]
EndReason = Literal["host_ended", "timeout"]
VotePool = Literal["mafia", "civilian"]
Winner = Literal["mafia", "civilians"]
EliminationReason = Literal["mafia", "voting"]
