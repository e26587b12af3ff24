import pytest

from mafianight.store.memory_store import MemoryStore


@pytest.mark.asyncio
async def test_update_is_multi_path():
    store = MemoryStore()
    await store.update({"games/1/status": "waiting", "games/1/players/a/name": "Ann"})
    assert await store.get("games/1") == {"status": "waiting", "players": {"a": {"name": "Ann"}}}


@pytest.mark.asyncio
async def test_set_none_deletes_and_prunes():
    store = MemoryStore()
    await store.set("games/1/players/a", {"name": "Ann"})
    await store.set("games/1/players/a", None)
    assert await store.get("games/1") is None
    assert await store.get("games") is None


@pytest.mark.asyncio
async def test_transact_abort_leaves_value():
    store = MemoryStore()
    await store.set("counter/x", 1)

    def boom(current):
        raise RuntimeError("no")

    with pytest.raises(RuntimeError):
        await store.transact("counter/x", boom)
    assert await store.get("counter/x") == 1

    written = await store.transact("counter/x", lambda v: (v or 0) + 1)
    assert written == 2
    assert await store.get("counter/x") == 2


@pytest.mark.asyncio
async def test_subscribe_initial_then_changes_in_order():
    store = MemoryStore()
    await store.set("games/1/status", "waiting")
    seen = []

    async def on_change(value):
        seen.append(value)

    unsubscribe = await store.subscribe("games/1", on_change)
    await store.settle()
    assert seen == [{"status": "waiting"}]

    await store.set("games/1/status", "started")
    await store.set("games/1/players/a/name", "Ann")
    await store.settle()
    assert seen[1] == {"status": "started"}
    assert seen[2] == {"status": "started", "players": {"a": {"name": "Ann"}}}

    await unsubscribe()
    await store.set("games/1/status", "ended")
    await store.settle()
    assert len(seen) == 3


@pytest.mark.asyncio
async def test_subscribe_skips_unrelated_and_duplicate_values():
    store = MemoryStore()
    seen = []

    async def on_change(value):
        seen.append(value)

    unsubscribe = await store.subscribe("games/1", on_change)
    await store.set("games/2/status", "waiting")
    await store.set("games/1/status", "waiting")
    await store.set("games/1/status", "waiting")
    await store.settle()
    assert seen == [None, {"status": "waiting"}]
    await unsubscribe()


@pytest.mark.asyncio
async def test_listener_can_write_back():
    store = MemoryStore()
    seen = []

    async def on_change(value):
        seen.append(value)
        if value == {"status": "waiting"}:
            await store.set("games/1/status", "ended")

    unsubscribe = await store.subscribe("games/1", on_change)
    await store.set("games/1/status", "waiting")
    await store.settle()
    assert seen == [None, {"status": "waiting"}, {"status": "ended"}]
    await unsubscribe()


@pytest.mark.asyncio
async def test_failing_listener_keeps_subscription_alive():
    store = MemoryStore()
    seen = []

    async def on_change(value):
        seen.append(value)
        if value == 1:
            raise RuntimeError("listener bug")

    unsubscribe = await store.subscribe("a/b", on_change)
    await store.set("a/b", 1)
    await store.set("a/b", 2)
    await store.settle()
    assert seen == [None, 1, 2]
    await unsubscribe()
    await unsubscribe()
