import pytest
from pydantic import ValidationError

from mafianight.transport.protocols import parse_incoming


def test_parse_incoming_create_session():
    msg = parse_incoming(
        {"type": "create_session", "total_players": 8, "mafia_count": 2, "detective_count": 1, "doctor_count": 1}
    )
    assert msg.type == "create_session"
    assert msg.total_players == 8
    assert msg.mafia_count == 2


def test_parse_incoming_create_session_bounds():
    with pytest.raises(ValidationError):
        parse_incoming({"type": "create_session", "total_players": 13, "mafia_count": 2})
    with pytest.raises(ValidationError):
        parse_incoming({"type": "create_session", "total_players": 6, "mafia_count": 0})


def test_parse_incoming_vote():
    msg = parse_incoming({"type": "vote", "pool": "mafia", "target": "p1"})
    assert msg.pool == "mafia"
    assert msg.target == "p1"

    with pytest.raises(ValidationError):
        parse_incoming({"type": "vote", "pool": "town", "target": "p1"})


def test_parse_incoming_set_phase():
    msg = parse_incoming({"type": "set_phase", "phase": "night", "duration_sec": 90})
    assert msg.phase == "night"
    assert msg.duration_sec == 90

    with pytest.raises(ValidationError):
        parse_incoming({"type": "set_phase", "phase": "dusk"})
    with pytest.raises(ValidationError):
        parse_incoming({"type": "set_phase", "phase": "day", "duration_sec": 5})


def test_parse_incoming_auth_requires_user():
    msg = parse_incoming({"type": "auth", "user_id": "u1", "display_name": "Ann", "token": "abc"})
    assert msg.user_id == "u1"
    assert msg.token == "abc"
    with pytest.raises(ValidationError):
        parse_incoming({"type": "auth", "user_id": "", "display_name": "Ann", "token": "abc"})
    with pytest.raises(ValidationError):
        parse_incoming({"type": "auth", "user_id": "u1", "display_name": "Ann"})


def test_parse_incoming_unknown_type():
    with pytest.raises(ValidationError):
        parse_incoming({"type": "not_a_real_type"})
    with pytest.raises(ValidationError):
        parse_incoming({"target": "p1"})
