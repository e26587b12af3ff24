import pytest

from mafianight.domain.identity import Identity
import mafianight.__main__ as entry
from mafianight.settings import DEV_AUTH_SECRET, get_settings
from mafianight.transport.ws_manager import WSManager


class FakeWS:
    def __init__(self):
        self.sent = []
        self.closed = None

    async def send_json(self, event):
        self.sent.append(event)

    async def close(self, code=1000, reason=None):
        self.closed = code


class CountingUnsub:
    def __init__(self):
        self.calls = 0

    async def __call__(self):
        self.calls += 1


@pytest.mark.asyncio
async def test_subscription_released_once_on_remove():
    wsman = WSManager()
    ws = FakeWS()
    unsub = CountingUnsub()
    await wsman.add("123456", "c1", ws)
    await wsman.bind("123456", "c1", Identity(user_id="u1", display_name="U"), unsub)

    await wsman.remove("123456", "c1")
    await wsman.remove("123456", "c1")
    assert unsub.calls == 1
    assert await wsman.room_size("123456") == 0


@pytest.mark.asyncio
async def test_rebind_releases_previous_subscription():
    wsman = WSManager()
    first, second = CountingUnsub(), CountingUnsub()
    await wsman.add("123456", "c1", FakeWS())
    await wsman.bind("123456", "c1", Identity(user_id="u1", display_name="U"), first)
    await wsman.bind("123456", "c1", Identity(user_id="u1", display_name="U"), second)
    assert first.calls == 1
    assert second.calls == 0


@pytest.mark.asyncio
async def test_broadcast_excludes_sender_and_close_user():
    wsman = WSManager()
    a, b = FakeWS(), FakeWS()
    await wsman.add("123456", "ca", a)
    await wsman.add("123456", "cb", b)
    await wsman.bind("123456", "cb", Identity(user_id="kicked", display_name="K"))

    await wsman.broadcast("123456", {"type": "player_removed", "pid": "kicked"}, exclude_cid="ca")
    assert a.sent == []
    assert b.sent == [{"type": "player_removed", "pid": "kicked"}]

    await wsman.close_user("123456", "kicked", code=4001)
    assert b.closed == 4001
    assert a.closed is None
    assert await wsman.room_size("123456") == 1


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("STORE_BACKEND", "MEMORY")
    monkeypatch.setenv("WS_ALLOW_LAN_ORIGINS", "no")
    monkeypatch.delenv("AUTH_SECRET", raising=False)
    monkeypatch.setenv("PORT", "9000")
    settings = get_settings()
    assert settings.AUTH_SECRET == DEV_AUTH_SECRET
    assert settings.STORE_BACKEND == "memory"
    assert settings.WS_ALLOW_LAN_ORIGINS is False
    assert settings.PORT == 9000


def test_entry_point_serves_app_with_settings(monkeypatch):
    calls = []
    monkeypatch.setattr(entry.uvicorn, "run", lambda app, **kw: calls.append((app, kw)))
    monkeypatch.setenv("HOST", "127.0.0.1")
    monkeypatch.setenv("PORT", "9100")
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    entry.main()
    assert calls == [("mafianight.main:app", {"host": "127.0.0.1", "port": 9100, "log_level": "info"})]
