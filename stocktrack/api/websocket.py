"""WebSocket fan-out of cache invalidation signals."""

from typing import Any
from uuid import uuid4

from fastapi import WebSocket, WebSocketDisconnect

from stocktrack.models.sync import CacheInvalidation
from stocktrack.utils.logging import get_logger

logger = get_logger(__name__)


class ConnectionManager:
    """Manages WebSocket connections."""

    def __init__(self) -> None:
        self.active_connections: dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket) -> str:
        """Accept and register a WebSocket connection."""
        await websocket.accept()
        client_id = str(uuid4())
        self.active_connections[client_id] = websocket
        logger.info("websocket_connected", client_id=client_id)
        return client_id

    def disconnect(self, client_id: str) -> None:
        """Remove a WebSocket connection."""
        if client_id in self.active_connections:
            del self.active_connections[client_id]
            logger.info("websocket_disconnected", client_id=client_id)

    async def broadcast(self, message: dict[str, Any]) -> int:
        """Send a message to every connection; returns how many received it."""
        delivered = 0
        for client_id, websocket in list(self.active_connections.items()):
            try:
                await websocket.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning("websocket_send_failed", client_id=client_id, error=str(e))
                self.disconnect(client_id)
        return delivered

    async def send_invalidation(self, signal: CacheInvalidation) -> int:
        """Tell clients which cached collections to refetch."""
        return await self.broadcast(
            {
                "type": "invalidate",
                "backend": signal.backend,
                "collections": [c.value for c in signal.collections],
            }
        )


# Global connection manager
manager = ConnectionManager()


async def handle_invalidation_socket(
    websocket: WebSocket,
    connections: ConnectionManager | None = None,
) -> None:
    """
    Keep a client subscribed to invalidation signals.

    Args:
        websocket: WebSocket connection
        connections: Registry to join; the module-level manager by default
    """
    connections = connections or manager
    client_id = await connections.connect(websocket)

    await websocket.send_json({"type": "connected", "client_id": client_id})

    try:
        while True:
            data = await websocket.receive_text()
            if data.strip() == "ping":
                await websocket.send_json({"type": "pong"})

    except WebSocketDisconnect:
        connections.disconnect(client_id)
        logger.info("websocket_client_disconnected", client_id=client_id)

    except Exception as e:
        logger.error("websocket_error", client_id=client_id, error=str(e))
        connections.disconnect(client_id)
