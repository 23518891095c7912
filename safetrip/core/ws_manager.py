"""Per-user realtime event hub over WebSockets."""

import json
import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)

EVENT_EMERGENCY = "emergency"
EVENT_TRIP_ALERTED = "trip.alerted"
EVENT_PONG = "pong"


def encode_event(event: str, data: Any = None) -> str:
    """Wire frame: ``{"event": ..., "data": ...}``. ``data`` is omitted when None."""
    frame: dict[str, Any] = {"event": event}
    if data is not None:
        frame["data"] = data
    return json.dumps(frame, default=str)


class RealtimeHub:
    """Open sockets grouped by user id. A user may hold several (phone + web)."""

    def __init__(self) -> None:
        self._sockets: dict[int, set[WebSocket]] = {}

    async def register(self, websocket: WebSocket, user_id: int) -> None:
        await websocket.accept()
        self._sockets.setdefault(user_id, set()).add(websocket)
        logger.info("Realtime socket opened: user_id=%s open=%s", user_id, self.open_sockets)

    def unregister(self, websocket: WebSocket, user_id: int) -> None:
        sockets = self._sockets.get(user_id)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            self._sockets.pop(user_id, None)
        logger.info("Realtime socket closed: user_id=%s open=%s", user_id, self.open_sockets)

    async def send_to_user(self, user_id: int, event: str, data: Any) -> int:
        """Deliver one event to every socket of ``user_id``. Returns how many got it.

        Sockets that fail on send are dropped.
        """
        sockets = self._sockets.get(user_id)
        if not sockets:
            return 0
        frame = encode_event(event, data)
        delivered = 0
        for websocket in list(sockets):
            try:
                await websocket.send_text(frame)
                delivered += 1
            except Exception:
                logger.info("Dropping dead socket for user_id=%s", user_id)
                sockets.discard(websocket)
        if not sockets:
            self._sockets.pop(user_id, None)
        return delivered

    @property
    def open_sockets(self) -> int:
        return sum(len(s) for s in self._sockets.values())


realtime_hub = RealtimeHub()
