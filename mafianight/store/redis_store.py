# mafianight/store/redis_store.py
from __future__ import annotations

import asyncio
import json
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from redis.asyncio import Redis
from redis.exceptions import WatchError

from mafianight.store.base import Listener, Unsubscribe
from mafianight.store.tree import read_at, split_path, write_at

logger = logging.getLogger(__name__)


class RedisStore:
    """
    Path store on Redis.
    Each top-level document ("games/<code>", "users/<uid>") is one JSON string key.
    Writes run under WATCH/MULTI and publish a change notice on the document channel.
    """

    def __init__(self, r: Redis, *, prefix: str = "mafianight", doc_ttl_sec: int = 7 * 24 * 3600):
        self.r = r
        self.prefix = prefix
        self.doc_ttl_sec = doc_ttl_sec

    def _dec(self, x):
        """Decode redis bytes -> str; pass through str/None safely."""
        if x is None:
            return None
        if isinstance(x, bytes):
            return x.decode("utf-8")
        return x

    # ----------------------------
    # Keys
    # ----------------------------
    def _key(self, doc: str) -> str:
        return f"{self.prefix}:doc:{doc}"

    def _channel(self, doc: str) -> str:
        return f"{self.prefix}:chg:{doc}"

    @staticmethod
    def _doc_of(parts: List[str]) -> Tuple[str, List[str]]:
        if len(parts) < 2:
            raise ValueError(f"Path must address a document: {'/'.join(parts)}")
        return f"{parts[0]}/{parts[1]}", parts[2:]

    def _load(self, raw) -> Any:
        raw = self._dec(raw)
        if raw is None:
            return None
        return json.loads(raw)

    # ----------------------------
    # Reads
    # ----------------------------
    async def get(self, path: str) -> Any:
        parts = split_path(path)
        if len(parts) == 1:
            return await self._get_collection(parts[0])
        doc, rest = self._doc_of(parts)
        tree = self._load(await self.r.get(self._key(doc)))
        return read_at(tree, rest)

    async def _get_collection(self, root: str) -> Optional[Dict[str, Any]]:
        # Scan for document keys: <prefix>:doc:<root>/<id>
        match = self._key(f"{root}/*")
        out: Dict[str, Any] = {}
        cursor = 0
        while True:
            cursor, keys = await self.r.scan(cursor=cursor, match=match, count=200)
            for k in keys:
                key = self._dec(k)
                doc_id = key.rsplit("/", 1)[1]
                value = self._load(await self.r.get(key))
                if value is not None:
                    out[doc_id] = value
            if cursor == 0:
                break
        return out or None

    # ----------------------------
    # Writes
    # ----------------------------
    async def set(self, path: str, value: Any) -> None:
        await self.update({path: value})

    async def remove(self, path: str) -> None:
        await self.update({path: None})

    async def update(self, changes: Mapping[str, Any]) -> None:
        grouped: Dict[str, List[Tuple[List[str], Any]]] = defaultdict(list)
        for path, value in changes.items():
            doc, rest = self._doc_of(split_path(path))
            grouped[doc].append((rest, value))

        def apply(trees: Dict[str, Any]) -> Dict[str, Any]:
            for doc, writes in grouped.items():
                tree = trees[doc]
                for rest, value in writes:
                    tree = write_at(tree, rest, value)
                trees[doc] = tree
            return trees

        await self._mutate(list(grouped.keys()), apply)

    async def transact(self, path: str, fn: Callable[[Any], Any]) -> Any:
        doc, rest = self._doc_of(split_path(path))
        written: Dict[str, Any] = {}

        def apply(trees: Dict[str, Any]) -> Dict[str, Any]:
            new_value = fn(read_at(trees[doc], rest))
            written["value"] = new_value
            trees[doc] = write_at(trees[doc], rest, new_value)
            return trees

        await self._mutate([doc], apply)
        return written.get("value")

    async def _mutate(self, docs: List[str], apply: Callable[[Dict[str, Any]], Dict[str, Any]]) -> None:
        keys = [self._key(d) for d in docs]
        async with self.r.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(*keys)
                    trees: Dict[str, Any] = {}
                    for doc, key in zip(docs, keys):
                        trees[doc] = self._load(await pipe.get(key))
                    trees = apply(trees)

                    pipe.multi()
                    for doc, key in zip(docs, keys):
                        tree = trees[doc]
                        if tree is None:
                            pipe.delete(key)
                        else:
                            pipe.set(key, json.dumps(tree), ex=self.doc_ttl_sec)
                        pipe.publish(self._channel(doc), "1")
                    await pipe.execute()
                    return
                except WatchError:
                    # another writer committed first; re-read and retry
                    continue

    # ----------------------------
    # Subscriptions
    # ----------------------------
    async def subscribe(self, path: str, on_change: Listener) -> Unsubscribe:
        parts = split_path(path)
        doc, _ = self._doc_of(parts)

        pubsub = self.r.pubsub()
        # subscribe before the first read so no commit falls in between
        await pubsub.subscribe(self._channel(doc))
        initial = await self.get(path)
        task = asyncio.create_task(self._pump(pubsub, path, on_change, initial))

        closed = False

        async def unsubscribe() -> None:
            nonlocal closed
            if closed:
                return
            closed = True
            if task is not asyncio.current_task():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
            await pubsub.unsubscribe()
            await pubsub.aclose()

        return unsubscribe

    async def _pump(self, pubsub, path: str, on_change: Listener, initial: Any) -> None:
        last = initial
        try:
            await on_change(initial)
        except Exception:
            logger.exception("Subscriber callback failed for %s", path)

        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            value = await self.get(path)
            if value == last:
                continue
            last = value
            try:
                await on_change(value)
            except Exception:
                logger.exception("Subscriber callback failed for %s", path)

    async def close(self) -> None:
        await self.r.aclose()
