# mafianight/store/repo.py
from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Optional

from mafianight.store.base import PathStore, Unsubscribe
from mafianight.store.models import SessionStore, UserStats
from mafianight.store.paths import SESSIONS_ROOT, SP, user_stats

SessionListener = Callable[[Optional[SessionStore]], Awaitable[None]]


class _CodeTaken(Exception):
    pass


def _dump(model) -> Dict[str, Any]:
    return model.model_dump(mode="json", exclude_none=True)


class SessionRepo:
    """Typed access to session documents and user stats on top of a PathStore."""

    def __init__(self, store: PathStore):
        self.store = store

    # ----------------------------
    # Session document
    # ----------------------------
    async def session_exists(self, code: str) -> bool:
        return await self.store.get(SP(code).field("code")) is not None

    async def get_session(self, code: str) -> Optional[SessionStore]:
        data = await self.store.get(SP(code).session())
        if not data:
            return None
        return SessionStore.model_validate(data)

    async def list_sessions(self) -> List[SessionStore]:
        data = await self.store.get(SESSIONS_ROOT) or {}
        return [SessionStore.model_validate(v) for v in data.values() if v]

    async def claim_session(self, session: SessionStore) -> bool:
        """Write session only if its code is free. False when taken."""
        new_doc = _dump(session)

        def _claim(current):
            # re-run on every retry; a rival commit seen here aborts without a write
            if current is not None:
                raise _CodeTaken()
            return new_doc

        try:
            await self.store.transact(SP(session.code).session(), _claim)
        except _CodeTaken:
            return False
        return True

    async def delete_session(self, code: str) -> None:
        await self.store.remove(SP(code).session())

    async def apply(self, changes: Dict[str, Any]) -> None:
        """Multi-path write; keys are full store paths (see SP)."""
        await self.store.update(changes)

    async def transact_session(
        self,
        code: str,
        fn: Callable[[Optional[SessionStore]], Optional[SessionStore]],
    ) -> Optional[SessionStore]:
        """
        Conditional read-modify-write of one session.
        fn returns the new session, or None to delete it; raising aborts.
        """
        def _step(current):
            session = SessionStore.model_validate(current) if current else None
            result = fn(session)
            return _dump(result) if result is not None else None

        written = await self.store.transact(SP(code).session(), _step)
        return SessionStore.model_validate(written) if written else None

    async def subscribe_session(self, code: str, on_change: SessionListener) -> Unsubscribe:
        async def _on_raw(value) -> None:
            await on_change(SessionStore.model_validate(value) if value else None)

        return await self.store.subscribe(SP(code).session(), _on_raw)

    # ----------------------------
    # User stats
    # ----------------------------
    async def get_user_stats(self, uid: str) -> UserStats:
        data = await self.store.get(user_stats(uid))
        return UserStats.model_validate(data) if data else UserStats()

    async def transact_user_stats(self, uid: str, fn: Callable[[UserStats], UserStats]) -> UserStats:
        def _step(current):
            stats = UserStats.model_validate(current) if current else UserStats()
            return fn(stats).model_dump(mode="json")

        written = await self.store.transact(user_stats(uid), _step)
        return UserStats.model_validate(written)
