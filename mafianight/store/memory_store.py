# mafianight/store/memory_store.py
from __future__ import annotations

import asyncio
import copy
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from mafianight.store.base import Listener, Unsubscribe
from mafianight.store.tree import overlaps, read_at, split_path, write_at

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass
class _Sub:
    parts: List[str]
    listener: Listener
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    last: Any = _MISSING
    closed: bool = False
    task: Optional[asyncio.Task] = None


class MemoryStore:
    """
    In-process store for tests and local runs.
    Every mutation is applied without awaiting, so it is atomic for the event loop.
    Each subscriber gets its own queue + reader task: delivery keeps commit order
    and a listener may write back into the store without re-entrancy.
    """

    def __init__(self) -> None:
        self._tree: Dict[str, Any] = {}
        self._subs: Dict[int, _Sub] = {}
        self._ids = itertools.count(1)
        self._pending = 0

    # ----------------------------
    # Reads / writes
    # ----------------------------
    async def get(self, path: str) -> Any:
        return read_at(self._tree, split_path(path))

    async def set(self, path: str, value: Any) -> None:
        self._write({path: value})

    async def update(self, changes: Mapping[str, Any]) -> None:
        self._write(changes)

    async def remove(self, path: str) -> None:
        self._write({path: None})

    async def transact(self, path: str, fn: Callable[[Any], Any]) -> Any:
        current = read_at(self._tree, split_path(path))
        new_value = fn(current)
        self._write({path: new_value})
        return copy.deepcopy(new_value)

    def _write(self, changes: Mapping[str, Any]) -> None:
        touched = []
        for path, value in changes.items():
            parts = split_path(path)
            self._tree = write_at(self._tree, parts, value) or {}
            touched.append(parts)
        self._notify(touched)

    # ----------------------------
    # Subscriptions
    # ----------------------------
    async def subscribe(self, path: str, on_change: Listener) -> Unsubscribe:
        sub_id = next(self._ids)
        sub = _Sub(parts=split_path(path), listener=on_change)
        self._subs[sub_id] = sub
        self._enqueue(sub, read_at(self._tree, sub.parts))
        sub.task = asyncio.create_task(self._pump(sub))

        async def unsubscribe() -> None:
            if sub.closed:
                return
            sub.closed = True
            self._subs.pop(sub_id, None)
            # queued notifications are dropped
            self._pending -= sub.queue.qsize()
            if sub.task is not None and sub.task is not asyncio.current_task():
                sub.task.cancel()
                try:
                    await sub.task
                except asyncio.CancelledError:
                    pass

        return unsubscribe

    def _enqueue(self, sub: _Sub, value: Any) -> None:
        self._pending += 1
        sub.queue.put_nowait(value)

    def _notify(self, touched: List[List[str]]) -> None:
        for sub in list(self._subs.values()):
            if any(overlaps(sub.parts, parts) for parts in touched):
                self._enqueue(sub, read_at(self._tree, sub.parts))

    async def _pump(self, sub: _Sub) -> None:
        while not sub.closed:
            value = await sub.queue.get()
            try:
                if sub.last is _MISSING or value != sub.last:
                    sub.last = value
                    await sub.listener(value)
            except Exception:
                logger.exception("Subscriber callback failed for %s", "/".join(sub.parts))
            finally:
                self._pending -= 1

    async def settle(self) -> None:
        """Wait until every queued notification has been delivered."""
        while self._pending > 0:
            await asyncio.sleep(0)

    async def close(self) -> None:
        for sub in list(self._subs.values()):
            sub.closed = True
            if sub.task is not None:
                sub.task.cancel()
        self._subs.clear()
        self._pending = 0
