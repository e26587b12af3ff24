# mafianight/store/base.py
from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, Protocol

Listener = Callable[[Any], Awaitable[None]]
Unsubscribe = Callable[[], Awaitable[None]]


class PathStore(Protocol):
    """
    Realtime key/value store addressed by slash paths ("games/123456/status").
    Values are JSON trees; writing None deletes a path.
    """

    async def get(self, path: str) -> Any: ...

    async def set(self, path: str, value: Any) -> None: ...

    async def update(self, changes: Mapping[str, Any]) -> None:
        """Apply several path -> value writes as one write."""

    async def remove(self, path: str) -> None: ...

    async def transact(self, path: str, fn: Callable[[Any], Any]) -> Any:
        """
        Conditional read-modify-write of one path.
        fn gets the current value and returns the new one (None deletes).
        An exception raised by fn aborts without writing.
        Returns the value written.
        """

    async def subscribe(self, path: str, on_change: Listener) -> Unsubscribe:
        """
        Deliver the current value at path now and after every change to it
        or any descendant. The returned coroutine function stops delivery.
        """

    async def close(self) -> None: ...
