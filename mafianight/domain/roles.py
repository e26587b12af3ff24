# mafianight/domain/roles.py
from __future__ import annotations

import random
from typing import Dict, List, Sequence

from mafianight.domain.errors import InvalidSettings
from mafianight.domain.types import Role
from mafianight.store.models import PlayerStore, SessionSettings

MIN_TOTAL_PLAYERS = 4
MAX_TOTAL_PLAYERS = 12


def max_mafia(total_players: int) -> int:
    return total_players // 3


def validate_settings(settings: SessionSettings) -> None:
    """Creation-time checks. Not re-run at start."""
    total = settings.total_players
    if total < MIN_TOTAL_PLAYERS or total > MAX_TOTAL_PLAYERS:
        raise InvalidSettings(f"Total players should be between {MIN_TOTAL_PLAYERS} and {MAX_TOTAL_PLAYERS}")
    if settings.mafia_count < 1 or settings.mafia_count > max_mafia(total):
        raise InvalidSettings(f"Mafia count should be between 1 and {max_mafia(total)}")
    if settings.detective_count < 0 or settings.doctor_count < 0:
        raise InvalidSettings("Role counts cannot be negative")
    if settings.civilian_count < 1:
        raise InvalidSettings("At least one civilian is required")


def build_role_pool(player_count: int, settings: SessionSettings) -> List[Role]:
    roles: List[Role] = (
        ["Mafia"] * settings.mafia_count
        + ["Detective"] * settings.detective_count
        + ["Doctor"] * settings.doctor_count
    )
    # caller guarantees enough players; extra special roles are dropped
    roles = roles[:player_count]
    roles.extend(["Civilian"] * (player_count - len(roles)))
    return roles


def assign_roles(
    players: Sequence[PlayerStore],
    settings: SessionSettings,
    rng: random.Random | None = None,
) -> Dict[str, Role]:
    """
    Fixed role counts, uniformly random placement.
    Players are zipped in the order given (join order).
    """
    rng = rng or random.SystemRandom()
    roles = build_role_pool(len(players), settings)
    rng.shuffle(roles)  # Fisher-Yates
    return {p.id: role for p, role in zip(players, roles)}


def faction(role: Role | None) -> str:
    return "mafia" if role == "Mafia" else "civilians"
