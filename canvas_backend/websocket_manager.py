"""
WebSocket Manager - Handles real-time connections and broadcasts.

Connected renderers receive two kinds of frames:
- graph_updated: the session changed; fetch GET /api/state
- positions: the latest arena positions after a simulation tick
"""
import asyncio
import json
import logging
from typing import Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class WebSocketManager:
    """
    Manages WebSocket connections and broadcasts.

    Failed sends drop the connection instead of raising.
    """

    def __init__(self):
        self._connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket):
        """Accept and register a new WebSocket connection."""
        await websocket.accept()
        async with self._lock:
            self._connections.add(websocket)
        logger.info(f"WebSocket connected. Total connections: {len(self._connections)}")

    async def disconnect(self, websocket: WebSocket):
        """Remove a WebSocket connection."""
        async with self._lock:
            self._connections.discard(websocket)
        logger.info(f"WebSocket disconnected. Total connections: {len(self._connections)}")

    async def broadcast(self, message: dict):
        """Send a message to every connected client."""
        if not self._connections:
            return

        # Serialize once for all clients
        message_text = json.dumps(message)
        failed: Set[WebSocket] = set()

        async with self._lock:
            for websocket in self._connections:
                try:
                    await websocket.send_text(message_text)
                except Exception as e:
                    logger.warning(f"WebSocket send failed, dropping client: {e}")
                    failed.add(websocket)

            self._connections -= failed

    async def notify_graph_updated(self, revision: int):
        """Tell clients the session changed."""
        await self.broadcast({
            "type": "graph_updated",
            "revision": revision
        })

    async def notify_positions(self, positions: list[dict]):
        """Push the latest node positions."""
        await self.broadcast({
            "type": "positions",
            "positions": positions
        })

    @property
    def connection_count(self) -> int:
        """Get the number of active connections."""
        return len(self._connections)


# Global instance
ws_manager = WebSocketManager()
