"""Event publisher - pushes refreshed monitor lists to a user's open websockets."""
import asyncio
import json
import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket

from ..schemas import MonitorConfig

logger = logging.getLogger(__name__)

# Never pushed to clients
SECRET_FIELDS = {"basic_auth_pass", "bearer_token"}


class EventPublisher:
    """Tracks websocket connections per user and fans messages out to them."""

    def __init__(self):
        self._connections: Dict[int, Set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, user_id: int, websocket: WebSocket):
        """Accept a new WebSocket connection."""
        await websocket.accept()
        async with self._lock:
            self._connections[user_id].add(websocket)
        logger.info(f"WebSocket connected for user {user_id}. Total connections: {self.connection_count()}")

    async def disconnect(self, user_id: int, websocket: WebSocket):
        async with self._lock:
            self._discard(user_id, websocket)
        logger.info(f"WebSocket disconnected for user {user_id}. Total connections: {self.connection_count()}")

    def _discard(self, user_id: int, websocket: WebSocket):
        sockets = self._connections.get(user_id)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            del self._connections[user_id]

    async def send(self, user_id: int, message: Dict[str, Any]):
        """Send a message to every connection of one user, dropping dead ones."""
        async with self._lock:
            connections = list(self._connections.get(user_id, ()))
        if not connections:
            return

        message_json = json.dumps(message, default=str)
        disconnected = []
        for websocket in connections:
            try:
                await websocket.send_text(message_json)
            except Exception as e:
                logger.debug(f"Failed to send to WebSocket: {e}")
                disconnected.append(websocket)

        if disconnected:
            async with self._lock:
                for ws in disconnected:
                    self._discard(user_id, ws)

    async def publish(self, user_id: int, monitors: List[MonitorConfig]):
        """Push the user's current monitor list."""
        await self.send(user_id, {
            "type": "monitors_updated",
            "user_id": user_id,
            "monitors": [m.model_dump(mode="json", exclude=SECRET_FIELDS) for m in monitors],
            "published_at": datetime.utcnow().isoformat(),
        })

    def connection_count(self, user_id: Optional[int] = None) -> int:
        if user_id is not None:
            return len(self._connections.get(user_id, ()))
        return sum(len(sockets) for sockets in self._connections.values())


# Global instance
event_publisher = EventPublisher()
