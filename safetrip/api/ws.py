"""Realtime socket: ``/ws?token=<jwt>``.

Server events: ``emergency`` when an SOS is raised, ``trip.alerted`` when a
trip deadline passes without the trip being ended. Clients may send ``ping``
(plain text or ``{"event": "ping"}``) and get ``{"event": "pong"}`` back.
"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from safetrip.core.security import token_subject
from safetrip.core.ws_manager import EVENT_PONG, encode_event, realtime_hub
from safetrip.db.session import SessionLocal
from safetrip.services.auth_service import get_user_by_email

logger = logging.getLogger(__name__)

router = APIRouter()


def _resolve_user_id(token: str | None) -> int | None:
    email = token_subject(token) if token else None
    if email is None:
        return None
    with SessionLocal() as db:
        user = get_user_by_email(db, email)
        return user.id if user is not None and user.is_active else None


def _is_ping(frame: str) -> bool:
    if frame.strip() == "ping":
        return True
    try:
        message = json.loads(frame)
    except ValueError:
        return False
    return isinstance(message, dict) and message.get("event") == "ping"


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket):
    user_id = _resolve_user_id(websocket.query_params.get("token"))
    if user_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid or missing token")
        return

    await realtime_hub.register(websocket, user_id)
    try:
        while True:
            frame = await websocket.receive_text()
            if _is_ping(frame):
                await websocket.send_text(encode_event(EVENT_PONG))
            else:
                logger.debug("Ignoring client frame from user_id=%s", user_id)
    except WebSocketDisconnect:
        pass
    finally:
        realtime_hub.unregister(websocket, user_id)
