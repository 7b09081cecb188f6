"""
WebSocket Connection Manager.
Keeps the open sockets of this process and delivers outbound messages to them.
"""

import logging
from typing import Dict, Iterable

from fastapi import WebSocket

from src.core.events import OutboundEvent, OutboundMessage

logger = logging.getLogger(__name__)


class ConnectionManager:
    def __init__(self) -> None:
        self.active_connections: Dict[str, WebSocket] = {}

    async def connect(self, connection_id: str, websocket: WebSocket) -> None:
        """
        Accepts a new WebSocket connection and tells the client its id.
        """
        await websocket.accept()
        self.active_connections[connection_id] = websocket
        logger.info("WS %s connected. Total: %d", connection_id, len(self.active_connections))

        await self.send(
            connection_id,
            OutboundMessage(event=OutboundEvent.CONNECTED, data={"connectionId": connection_id}),
        )

    def disconnect(self, connection_id: str) -> None:
        """
        Removes a WebSocket connection
        """
        if self.active_connections.pop(connection_id, None) is not None:
            logger.info("WS %s disconnected. Total: %d", connection_id, len(self.active_connections))

    async def send(self, connection_id: str, message: OutboundMessage) -> None:
        """
        Sends a message to one connection. Fire and forget:
        failures are logged, never raised.
        """
        websocket = self.active_connections.get(connection_id)
        if websocket is None:
            return
        try:
            await websocket.send_json(message.frame())
        except Exception as e:
            logger.warning("Error sending to WS %s: %s", connection_id, e)

    async def send_many(self, connection_ids: Iterable[str], message: OutboundMessage) -> None:
        """Sends the same message to several connections."""
        for connection_id in list(connection_ids):
            await self.send(connection_id, message)


# Singleton instance
manager = ConnectionManager()
