import random

import pytest

from mafianight.domain import actions, phases, sessions
from mafianight.domain.errors import (
    NotHost,
    NotInSession,
    PlayerEliminated,
    PlayerNotFound,
    SessionNotFound,
    WrongPhase,
    WrongRole,
)
from mafianight.domain.identity import Identity
from mafianight.domain.stats import StoreStatsSink
from mafianight.store.memory_store import MemoryStore
from mafianight.store.paths import SP
from mafianight.store.repo import SessionRepo

HOST = Identity(user_id="host", display_name="Host")


def ident(uid):
    return Identity(user_id=uid, display_name=uid.title())


async def _game(repo, seed=11):
    code = await sessions.create_session(
        repo=repo, identity=HOST, total_players=6, mafia_count=2, detective_count=1, doctor_count=1
    )
    for i in range(6):
        await sessions.join_session(repo=repo, code=code, identity=ident(f"p{i}"))
    started = await sessions.start_session(repo=repo, code=code, identity=HOST, rng=random.Random(seed))
    by_role = {}
    for p in started.non_host_players():
        by_role.setdefault(p.role, []).append(p.id)
    return code, by_role


async def _phase(repo, code, phase):
    await phases.set_phase(repo=repo, code=code, identity=HOST, phase=phase)


# -------------------------
# gating
# -------------------------

@pytest.mark.asyncio
async def test_mafia_vote_is_night_and_mafia_only(repo):
    code, roles = await _game(repo)
    mafioso = roles["Mafia"][0]
    civ = roles["Civilian"][0]

    await _phase(repo, code, "day")
    with pytest.raises(WrongPhase):
        await actions.submit_vote(repo=repo, code=code, identity=ident(mafioso), target_id=civ, pool="mafia")

    await _phase(repo, code, "night")
    with pytest.raises(WrongRole):
        await actions.submit_vote(repo=repo, code=code, identity=ident(civ), target_id=mafioso, pool="mafia")
    with pytest.raises(NotInSession):
        await actions.submit_vote(repo=repo, code=code, identity=HOST, target_id=civ, pool="mafia")
    with pytest.raises(PlayerNotFound):
        await actions.submit_vote(repo=repo, code=code, identity=ident(mafioso), target_id="host", pool="mafia")

    await actions.submit_vote(repo=repo, code=code, identity=ident(mafioso), target_id=civ, pool="mafia")
    assert (await repo.get_session(code)).votes.mafia == {mafioso: civ}


@pytest.mark.asyncio
async def test_civilian_vote_during_voting_and_revote_overwrites(repo):
    code, roles = await _game(repo)
    voter = roles["Doctor"][0]
    a, b = roles["Civilian"]

    await _phase(repo, code, "night")
    with pytest.raises(WrongPhase):
        await actions.submit_vote(repo=repo, code=code, identity=ident(voter), target_id=a, pool="civilian")

    await _phase(repo, code, "voting")
    await actions.submit_vote(repo=repo, code=code, identity=ident(voter), target_id=a, pool="civilian")
    await actions.submit_vote(repo=repo, code=code, identity=ident(voter), target_id=b, pool="civilian")
    assert (await repo.get_session(code)).votes.civilian == {voter: b}


@pytest.mark.asyncio
async def test_investigate_reports_mafia_membership(repo):
    code, roles = await _game(repo)
    det = roles["Detective"][0]

    await _phase(repo, code, "day")
    with pytest.raises(WrongPhase):
        await actions.investigate(repo=repo, code=code, identity=ident(det), target_id=roles["Mafia"][0])

    await _phase(repo, code, "night")
    with pytest.raises(WrongRole):
        await actions.investigate(repo=repo, code=code, identity=ident(roles["Doctor"][0]), target_id=det)

    assert await actions.investigate(repo=repo, code=code, identity=ident(det), target_id=roles["Mafia"][0]) is True
    assert await actions.investigate(repo=repo, code=code, identity=ident(det), target_id=roles["Civilian"][0]) is False

    result = (await repo.get_session(code)).investigation_results[det]
    assert result.target_id == roles["Civilian"][0]
    assert result.is_mafia is False


@pytest.mark.asyncio
async def test_protect_is_doctor_only(repo):
    code, roles = await _game(repo)
    doc = roles["Doctor"][0]
    await _phase(repo, code, "night")

    with pytest.raises(WrongRole):
        await actions.protect(repo=repo, code=code, identity=ident(roles["Civilian"][0]), target_id=doc)

    await actions.protect(repo=repo, code=code, identity=ident(doc), target_id=doc)
    assert (await repo.get_session(code)).protected_players == {doc: doc}


# -------------------------
# resolution
# -------------------------

@pytest.mark.asyncio
async def test_night_kill_and_protection(repo):
    code, roles = await _game(repo)
    m1, m2 = roles["Mafia"]
    doc = roles["Doctor"][0]
    victim = roles["Civilian"][0]

    await _phase(repo, code, "night")
    for m in (m1, m2):
        await actions.submit_vote(repo=repo, code=code, identity=ident(m), target_id=victim, pool="mafia")
    await actions.protect(repo=repo, code=code, identity=ident(doc), target_id=victim)

    with pytest.raises(NotHost):
        await actions.resolve_night(repo=repo, code=code, identity=ident(m1))

    res = await actions.resolve_night(repo=repo, code=code, identity=HOST)
    assert res.target_id == victim
    assert res.protected is True
    assert res.eliminated is False
    assert not (await repo.get_session(code)).players[victim].eliminated

    # next night, no protection
    await _phase(repo, code, "night")
    for m in (m1, m2):
        await actions.submit_vote(repo=repo, code=code, identity=ident(m), target_id=victim, pool="mafia")
    res = await actions.resolve_night(repo=repo, code=code, identity=HOST)
    assert res.eliminated is True

    session = await repo.get_session(code)
    assert session.players[victim].eliminated
    assert session.eliminated_players[victim].reason == "mafia"

    await _phase(repo, code, "voting")
    with pytest.raises(PlayerEliminated):
        await actions.submit_vote(repo=repo, code=code, identity=ident(victim), target_id=m1, pool="civilian")


@pytest.mark.asyncio
async def test_tied_day_vote_eliminates_nobody(repo):
    code, roles = await _game(repo)
    a, b = roles["Civilian"]
    await _phase(repo, code, "voting")
    await actions.submit_vote(repo=repo, code=code, identity=ident(a), target_id=b, pool="civilian")
    await actions.submit_vote(repo=repo, code=code, identity=ident(b), target_id=a, pool="civilian")

    with pytest.raises(WrongPhase):
        await actions.resolve_night(repo=repo, code=code, identity=HOST)

    res = await actions.resolve_day(repo=repo, code=code, identity=HOST)
    assert res.target_id is None
    assert res.eliminated is False
    assert (await repo.get_session(code)).eliminated_players == {}


@pytest.mark.asyncio
async def test_voting_out_all_mafia_decides_for_civilians(repo):
    code, roles = await _game(repo)
    voters = roles["Civilian"] + roles["Detective"] + roles["Doctor"]

    for target in roles["Mafia"]:
        await _phase(repo, code, "voting")
        for v in voters:
            await actions.submit_vote(repo=repo, code=code, identity=ident(v), target_id=target, pool="civilian")
        res = await actions.resolve_day(repo=repo, code=code, identity=HOST)
        assert res.eliminated is True

    assert res.winner == "civilians"
    session = await repo.get_session(code)
    assert session.outcome.winner == "civilians"
    # recorded, not applied
    assert session.status == "started"

    await sessions.end_session(repo=repo, code=code, identity=HOST, stats=StoreStatsSink(repo))
    civ_stats = await repo.get_user_stats(roles["Civilian"][0])
    mafia_stats = await repo.get_user_stats(roles["Mafia"][0])
    assert civ_stats.games_won == 1
    assert mafia_stats.games_won == 0
    assert mafia_stats.role_stats.mafia == 1


# -------------------------
# concurrent deletion
# -------------------------

class DeletingStore(MemoryStore):
    """Removes the document right before the next conditional write reads it."""

    def __init__(self):
        super().__init__()
        self.armed = False

    async def transact(self, path, fn):
        if self.armed:
            self.armed = False
            await self.remove(path)
        return await super().transact(path, fn)


@pytest.mark.asyncio
async def test_action_on_deleted_session_leaves_no_fragment():
    store = DeletingStore()
    repo = SessionRepo(store)
    code, roles = await _game(repo)
    await _phase(repo, code, "night")

    store.armed = True
    with pytest.raises(SessionNotFound):
        await actions.submit_vote(
            repo=repo, code=code, identity=ident(roles["Mafia"][0]), target_id=roles["Civilian"][0], pool="mafia"
        )
    assert await store.get(SP(code).session()) is None
    assert await repo.list_sessions() == []
    assert await sessions.list_sessions_for_user(repo=repo, user_id="p0") == []

    store.armed = True
    with pytest.raises(SessionNotFound):
        await actions.resolve_night(repo=repo, code=code, identity=HOST)
    assert await repo.list_sessions() == []
