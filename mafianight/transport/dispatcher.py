# mafianight/transport/dispatcher.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError
from redis.exceptions import RedisError

from mafianight.domain.errors import GameError, translate_backend_error
from mafianight.domain.handlers.game import (
    handle_advance_phase,
    handle_investigate,
    handle_phase_tick,
    handle_protect,
    handle_resolve_day,
    handle_resolve_night,
    handle_set_phase,
    handle_vote,
)
from mafianight.domain.handlers.lobby import (
    handle_create_session,
    handle_end_game,
    handle_join,
    handle_leave,
    handle_remove_player,
    handle_snapshot,
    handle_start_game,
)
from mafianight.domain.identity import Identity
from mafianight.transport.protocols import (
    InAdvancePhase,
    InCreateSession,
    InEndGame,
    InInvestigate,
    InJoin,
    InLeave,
    InPhaseTick,
    InProtect,
    InRemovePlayer,
    InResolveDay,
    InResolveNight,
    InSetPhase,
    InSnapshot,
    InStartGame,
    InVote,
    OutError,
    OutgoingEvent,
    parse_incoming,
)

logger = logging.getLogger(__name__)

DispatchResult = Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]
# (to_sender_events, to_room_events), each event is JSON dict

_ROUTES = [
    (InCreateSession, handle_create_session),
    (InJoin, handle_join),
    (InLeave, handle_leave),
    (InRemovePlayer, handle_remove_player),
    (InStartGame, handle_start_game),
    (InEndGame, handle_end_game),
    (InSnapshot, handle_snapshot),
    (InSetPhase, handle_set_phase),
    (InAdvancePhase, handle_advance_phase),
    (InPhaseTick, handle_phase_tick),
    (InVote, handle_vote),
    (InInvestigate, handle_investigate),
    (InProtect, handle_protect),
    (InResolveNight, handle_resolve_night),
    (InResolveDay, handle_resolve_day),
]


async def dispatch_message(
    *,
    app,
    room_code: str,
    identity: Optional[Identity],
    raw: Dict[str, Any],
) -> DispatchResult:
    """
    Transport layer calls this.
    - Parses + validates raw JSON
    - Routes to the correct domain handler
    - Turns GameError / backend failures into error events for the sender
    Returns (to_sender, to_room) events as JSON dicts.
    """
    try:
        msg = parse_incoming(raw)
    except (ValidationError, ValueError) as e:
        err = OutError(code="BAD_MESSAGE", message=str(e)).model_dump()
        return [err], []

    handler = None
    for cls, fn in _ROUTES:
        if isinstance(msg, cls):
            handler = fn
            break

    if handler is None:
        err = OutError(code="NOT_IMPLEMENTED", message=f"Handler not implemented for type={msg.type}").model_dump()
        return [err], []

    try:
        to_sender, to_room = await handler(app=app, room_code=room_code, identity=identity, msg=msg)
    except GameError as e:
        return _dump([OutError(code=e.code, message=e.message)]), []
    except RedisError as e:
        translated = translate_backend_error(e)
        if translated is not None:
            logger.warning("Backend rejected %s in %s: %s", msg.type, room_code, e)
            return _dump([OutError(code=translated.code, message=translated.message)]), []
        logger.exception("Backend failure handling %s in %s", msg.type, room_code)
        err = OutError(code="BACKEND_UNAVAILABLE", message="Connection problem. Please try again.")
        return _dump([err]), []

    return _dump(to_sender), _dump(to_room)


def _dump(events: List[OutgoingEvent]) -> List[Dict[str, Any]]:
    """
    Convert pydantic events -> JSON dicts.
    """
    return [e.model_dump() for e in events]
