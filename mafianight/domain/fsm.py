# mafianight/domain/fsm.py
from __future__ import annotations

from typing import Dict, List, Optional

from mafianight.domain.types import Phase, Status

# preparation only opens the game; afterwards the cycle is day -> voting -> night -> results
NEXT_PHASE: Dict[Phase, Phase] = {
    "preparation": "day",
    "day": "voting",
    "voting": "night",
    "night": "results",
    "results": "day",
}

DEFAULT_PHASE_DURATIONS: Dict[Phase, int] = {
    "preparation": 60,
    "day": 180,
    "voting": 60,
    "night": 120,
    "results": 60,
}


def can_transition_to(current: Status, target: Status) -> bool:
    """
    Validate status transitions.
    """
    transitions: Dict[Status, List[Status]] = {
        "waiting": ["started", "ended"],
        "started": ["ended"],
        "ended": [],
    }
    return target in transitions.get(current, [])


def next_phase(current: Optional[Phase]) -> Phase:
    if current is None:
        return "preparation"
    return NEXT_PHASE[current]


def phase_duration(phase: Phase, override: Optional[int] = None) -> int:
    if override is not None and override > 0:
        return int(override)
    return DEFAULT_PHASE_DURATIONS[phase]
