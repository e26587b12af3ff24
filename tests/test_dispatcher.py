import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import NoPermissionError

from mafianight.domain.identity import Identity
from mafianight.domain.stats import StoreStatsSink
from mafianight.store.memory_store import MemoryStore
from mafianight.store.repo import SessionRepo
from mafianight.transport.dispatcher import dispatch_message

HOST = Identity(user_id="host", display_name="Host")


class FakeApp:
    def __init__(self, repo):
        self.state = type("State", (), {"repo": repo, "stats": StoreStatsSink(repo)})()


class BrokenStore(MemoryStore):
    def __init__(self, exc):
        super().__init__()
        self.exc = exc

    async def transact(self, path, fn):
        raise self.exc


def _app():
    return FakeApp(SessionRepo(MemoryStore()))


async def _create(app):
    to_sender, _ = await dispatch_message(
        app=app,
        room_code="CREATE",
        identity=HOST,
        raw={"type": "create_session", "total_players": 4, "mafia_count": 1, "detective_count": 1, "doctor_count": 1},
    )
    assert to_sender[0]["type"] == "session_created"
    return to_sender[0]["room_code"]


@pytest.mark.asyncio
async def test_bad_message():
    to_sender, to_room = await dispatch_message(app=_app(), room_code="123456", identity=HOST, raw={"type": "nope"})
    assert to_sender[0]["type"] == "error"
    assert to_sender[0]["code"] == "BAD_MESSAGE"
    assert to_room == []


@pytest.mark.asyncio
async def test_join_without_identity():
    app = _app()
    code = await _create(app)
    to_sender, to_room = await dispatch_message(app=app, room_code=code, identity=None, raw={"type": "join"})
    assert to_sender[0]["code"] == "AUTH_REQUIRED"
    assert to_room == []


@pytest.mark.asyncio
async def test_join_broadcasts_to_room():
    app = _app()
    code = await _create(app)
    player = Identity(user_id="p1", display_name="Pat")
    to_sender, to_room = await dispatch_message(app=app, room_code=code, identity=player, raw={"type": "join"})
    assert to_room == [{"type": "player_joined", "pid": "p1", "name": "Pat"}]
    assert to_sender == to_room


@pytest.mark.asyncio
async def test_game_error_becomes_error_event():
    app = _app()
    code = await _create(app)
    player = Identity(user_id="p1", display_name="Pat")
    await dispatch_message(app=app, room_code=code, identity=player, raw={"type": "join"})

    to_sender, to_room = await dispatch_message(app=app, room_code=code, identity=player, raw={"type": "start_game"})
    assert to_sender[0]["type"] == "error"
    assert to_sender[0]["code"] == "NOT_HOST"
    assert to_room == []

    to_sender, _ = await dispatch_message(app=app, room_code="999999", identity=player, raw={"type": "snapshot"})
    assert to_sender[0]["code"] == "SESSION_NOT_FOUND"


@pytest.mark.asyncio
async def test_snapshot_is_redacted_for_viewer():
    app = _app()
    code = await _create(app)
    to_sender, _ = await dispatch_message(app=app, room_code=code, identity=HOST, raw={"type": "snapshot"})
    snap = to_sender[0]
    assert snap["type"] == "session_snapshot"
    assert snap["session"]["code"] == code
    assert snap["session"]["status"] == "waiting"


@pytest.mark.asyncio
async def test_backend_failure_is_generic():
    app = FakeApp(SessionRepo(BrokenStore(RedisConnectionError("Connection refused by 10.0.0.5"))))
    to_sender, to_room = await dispatch_message(
        app=app,
        room_code="CREATE",
        identity=HOST,
        raw={"type": "create_session", "total_players": 4, "mafia_count": 1},
    )
    assert to_sender[0]["code"] == "BACKEND_UNAVAILABLE"
    assert "10.0.0.5" not in to_sender[0]["message"]
    assert to_room == []


@pytest.mark.asyncio
async def test_backend_permission_error_is_translated():
    app = FakeApp(SessionRepo(BrokenStore(NoPermissionError("NOPERM this user has no permissions"))))
    to_sender, _ = await dispatch_message(
        app=app,
        room_code="CREATE",
        identity=HOST,
        raw={"type": "create_session", "total_players": 4, "mafia_count": 1},
    )
    assert to_sender[0]["code"] == "PERMISSION_DENIED"
