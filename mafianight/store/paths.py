# mafianight/store/paths.py
from __future__ import annotations

from dataclasses import dataclass

SESSIONS_ROOT = "games"
USERS_ROOT = "users"


@dataclass(frozen=True)
class SP:
    """
    Store path builder for session-scoped paths.
    Every session lives in one document: games/<code>.
    """
    code: str

    # ---- Core ----
    def session(self) -> str:
        return f"{SESSIONS_ROOT}/{self.code}"

    def field(self, name: str) -> str:
        return f"{SESSIONS_ROOT}/{self.code}/{name}"

    # ---- Actions ----
    def vote(self, pool: str, voter: str) -> str:
        return f"{SESSIONS_ROOT}/{self.code}/votes/{pool}/{voter}"

    def protection(self, doctor: str) -> str:
        return f"{SESSIONS_ROOT}/{self.code}/protected_players/{doctor}"


def user_stats(uid: str) -> str:
    return f"{USERS_ROOT}/{uid}/stats"
