# notifier.py
import json
import logging
from typing import Dict, List, Protocol

import fastapi

from slot_swapper.data_models import SwapEvent

logger = logging.getLogger(__name__)

SWAP_REQUEST_CREATED = "swap-request-created"
SWAP_REQUEST_ACCEPTED = "swap-request-accepted"
SWAP_REQUEST_REJECTED = "swap-request-rejected"


class Notifier(Protocol):
    async def publish(self, event: SwapEvent) -> None:
        ...


class ConnectionManager:
    """Tracks live websocket sessions per user and routes swap events to them."""

    def __init__(self):
        self.active_connections: Dict[int, List[fastapi.WebSocket]] = {}

    async def connect(self, user_id: int, websocket: fastapi.WebSocket):
        await websocket.accept()
        self.active_connections.setdefault(user_id, []).append(websocket)
        logger.info("User %s connected (%d session(s))", user_id, len(self.active_connections[user_id]))

    def disconnect(self, user_id: int, websocket: fastapi.WebSocket):
        sessions = self.active_connections.get(user_id, [])
        if websocket in sessions:
            sessions.remove(websocket)
        if not sessions:
            self.active_connections.pop(user_id, None)

    def is_connected(self, user_id: int) -> bool:
        return bool(self.active_connections.get(user_id))

    async def send_to_user(self, user_id: int, message: str) -> int:
        """Send to every session of one user. Returns how many sessions received it."""
        delivered = 0
        for connection in list(self.active_connections.get(user_id, [])):
            try:
                await connection.send_text(message)
                delivered += 1
            except Exception:
                logger.warning("Dropping stale session for user %s", user_id, exc_info=True)
                self.disconnect(user_id, connection)
        return delivered

    async def publish(self, event: SwapEvent) -> None:
        message = json.dumps({"type": event.name, "data": event.payload()})
        delivered = await self.send_to_user(event.recipient_id, message)
        logger.info("Event %s for request %s delivered to %d session(s) of user %s",
                    event.name, event.request_id, delivered, event.recipient_id)
