# mafianight/transport/ws.py
from __future__ import annotations

import ipaddress
import logging
import uuid
from typing import Optional
from urllib.parse import urlparse

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from mafianight.domain import sessions
from mafianight.domain.codes import is_valid_code
from mafianight.domain.errors import GameError
from mafianight.domain.handlers.snapshot import build_snapshot
from mafianight.domain.identity import Identity, authenticate
from mafianight.settings import get_settings
from mafianight.store.models import SessionStore
from mafianight.transport.dispatcher import dispatch_message
from mafianight.transport.protocols import (
    InAuth,
    OutAuthed,
    OutError,
    OutHello,
    OutSessionClosed,
    parse_incoming,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Expo dev server / web preview ports
_LAN_DEV_PORTS = {8081, 19000, 19006}

# close code sent to a player the host removed
REMOVED_CLOSE_CODE = 4001


def _is_private_ip(host: str) -> bool:
    """Return True if host is a private IP (192.168.x.x, 10.x.x.x, 172.16-31.x.x)."""
    try:
        ip = ipaddress.ip_address(host)
        return ip.is_private
    except ValueError:
        return False


async def _check_origin_or_close(websocket: WebSocket) -> bool:
    settings = get_settings()
    allowed = {o.strip() for o in settings.WS_ALLOWED_ORIGINS.split(",") if o.strip()}

    origin = websocket.headers.get("origin")
    if origin is None:
        # native clients send no Origin
        return True
    if origin in allowed:
        return True
    if settings.WS_ALLOW_LAN_ORIGINS:
        o = urlparse(origin)
        if _is_private_ip(o.hostname or "") and o.port in _LAN_DEV_PORTS:
            return True
    await websocket.close(code=1008)
    return False


def _parse_auth(raw, secret: str) -> Optional[Identity]:
    """Raises InvalidToken when the token was not issued for this user id."""
    msg = parse_incoming(raw)
    if not isinstance(msg, InAuth):
        return None
    return authenticate(
        user_id=msg.user_id,
        display_name=msg.display_name,
        token=msg.token,
        secret=secret,
    )


@router.websocket("/ws-create")
async def ws_create(websocket: WebSocket):
    """
    One-shot socket: auth, then create_session. Replies with the new code and closes;
    the client reconnects on /ws/{code}.
    """
    if not await _check_origin_or_close(websocket):
        return

    await websocket.accept()
    secret = get_settings().AUTH_SECRET

    try:
        try:
            identity = _parse_auth(await websocket.receive_json(), secret)
        except ValidationError as e:
            identity = None
            logger.debug("ws-create auth rejected: %s", e)
        except GameError as e:
            logger.info("ws-create auth refused: %s", e.code)
            await websocket.send_json(OutError(code=e.code, message=e.message).model_dump())
            return
        if identity is None:
            err = OutError(code="AUTH_REQUIRED", message="Send auth before create_session").model_dump()
            await websocket.send_json(err)
            return
        await websocket.send_json(OutAuthed(user_id=identity.user_id).model_dump())

        raw = await websocket.receive_json()
        if not isinstance(raw, dict) or raw.get("type") != "create_session":
            err = OutError(code="ONLY_CREATE_SESSION", message="ws-create only accepts create_session").model_dump()
            await websocket.send_json(err)
            return

        to_sender, _ = await dispatch_message(
            app=websocket.app,
            room_code="CREATE",
            identity=identity,
            raw=raw,
        )
        for e in to_sender:
            await websocket.send_json(e)
    except WebSocketDisconnect:
        return
    finally:
        try:
            await websocket.close()
        except RuntimeError:
            # already closed by the client
            pass


@router.websocket("/ws/{room_code}")
async def ws_room(websocket: WebSocket, room_code: str):
    if not await _check_origin_or_close(websocket):
        return

    await websocket.accept()

    if not is_valid_code(room_code):
        await websocket.send_json(OutError(code="BAD_CODE", message="Invalid game code").model_dump())
        await websocket.close(code=1008)
        return

    app = websocket.app
    wsman = app.state.wsman
    secret = get_settings().AUTH_SECRET
    cid = uuid.uuid4().hex[:10]
    identity: Optional[Identity] = None

    await wsman.add(room_code, cid, websocket)
    await websocket.send_json(OutHello(room_code=room_code).model_dump())

    async def _push(session: Optional[SessionStore]) -> None:
        if session is None:
            event = OutSessionClosed(room_code=room_code).model_dump()
        else:
            event = build_snapshot(session, identity.user_id if identity else None).model_dump()
        await websocket.send_json(event)

    try:
        while True:
            raw = await websocket.receive_json()

            # auth binds the connection and (re)starts the live snapshot feed
            if isinstance(raw, dict) and raw.get("type") == "auth":
                try:
                    verified = _parse_auth(raw, secret)
                except ValidationError as e:
                    await websocket.send_json(OutError(code="BAD_MESSAGE", message=str(e)).model_dump())
                    continue
                except GameError as e:
                    # previous identity (if any) stays bound
                    logger.info("Socket %s auth refused in room %s: %s", cid, room_code, e.code)
                    await websocket.send_json(OutError(code=e.code, message=e.message).model_dump())
                    continue
                identity = verified
                await websocket.send_json(OutAuthed(user_id=identity.user_id).model_dump())
                unsubscribe = await sessions.subscribe(
                    repo=app.state.repo,
                    code=room_code,
                    on_change=_push,
                    stats=app.state.stats,
                )
                await wsman.bind(room_code, cid, identity, unsubscribe)
                continue

            to_sender, to_room = await dispatch_message(
                app=app,
                room_code=room_code,
                identity=identity,
                raw=raw,
            )

            # unicast
            for e in to_sender:
                await websocket.send_json(e)

            # broadcast (exclude sender to avoid duplicates)
            for e in to_room:
                await wsman.broadcast(room_code, e, exclude_cid=cid)
                if e.get("type") == "player_removed":
                    await wsman.close_user(room_code, e["pid"], code=REMOVED_CLOSE_CODE, reason="removed")

    except WebSocketDisconnect:
        logger.debug("Socket %s left room %s", cid, room_code)

    finally:
        await wsman.remove(room_code, cid)
