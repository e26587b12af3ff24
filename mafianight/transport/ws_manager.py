# mafianight/transport/ws_manager.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from fastapi import WebSocket

from mafianight.domain.identity import Identity
from mafianight.store.base import Unsubscribe

logger = logging.getLogger(__name__)


@dataclass
class Conn:
    cid: str
    ws: WebSocket
    identity: Optional[Identity] = None
    unsubscribe: Optional[Unsubscribe] = None


class WSManager:
    """
    In-memory connection registry.
    - room_code -> cid -> connection (socket, identity, snapshot subscription)
    Transport-only: no store access, no game rules.
    """
    def __init__(self) -> None:
        self._rooms: Dict[str, Dict[str, Conn]] = {}
        self._lock = asyncio.Lock()

    async def add(self, room_code: str, cid: str, ws: WebSocket) -> None:
        async with self._lock:
            self._rooms.setdefault(room_code, {})[cid] = Conn(cid=cid, ws=ws)

    async def bind(
        self,
        room_code: str,
        cid: str,
        identity: Identity,
        unsubscribe: Optional[Unsubscribe] = None,
    ) -> None:
        """Attach identity + subscription to a connection; a previous subscription is released."""
        async with self._lock:
            conn = self._rooms.get(room_code, {}).get(cid)
            if conn is None:
                old = unsubscribe
            else:
                old = conn.unsubscribe
                conn.identity = identity
                conn.unsubscribe = unsubscribe
        if old is not None:
            await old()

    async def remove(self, room_code: str, cid: str) -> None:
        async with self._lock:
            room = self._rooms.get(room_code)
            if not room:
                return
            conn = room.pop(cid, None)
            if not room:
                self._rooms.pop(room_code, None)
        if conn is not None and conn.unsubscribe is not None:
            await conn.unsubscribe()

    async def broadcast(self, room_code: str, event: dict, exclude_cid: Optional[str] = None) -> None:
        # copy conns under lock, send outside lock
        async with self._lock:
            conns = list(self._rooms.get(room_code, {}).values())

        for c in conns:
            if exclude_cid and c.cid == exclude_cid:
                continue
            try:
                await c.ws.send_json(event)
            except Exception:
                # dead socket; ws.py cleans up on disconnect
                logger.debug("broadcast to %s/%s failed", room_code, c.cid)

    async def close_user(self, room_code: str, user_id: str, code: int = 4000, reason: str = "kicked") -> None:
        """Close every socket a user holds in this room and drop them from the registry."""
        async with self._lock:
            conns = [
                c for c in self._rooms.get(room_code, {}).values()
                if c.identity is not None and c.identity.user_id == user_id
            ]
        for c in conns:
            try:
                await c.ws.close(code=code, reason=reason)
            except Exception:
                logger.debug("close %s/%s failed", room_code, c.cid)
            await self.remove(room_code, c.cid)

    async def close_room(self, room_code: str, code: int = 4000, reason: str = "closed") -> None:
        async with self._lock:
            conns = list(self._rooms.get(room_code, {}).values())
        for c in conns:
            try:
                await c.ws.close(code=code, reason=reason)
            except Exception:
                logger.debug("close %s/%s failed", room_code, c.cid)
            await self.remove(room_code, c.cid)

    async def room_size(self, room_code: str) -> int:
        async with self._lock:
            return len(self._rooms.get(room_code, {}))

    async def rooms(self) -> List[str]:
        async with self._lock:
            return sorted(self._rooms.keys())
