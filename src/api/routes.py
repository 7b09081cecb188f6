"""
API Routes definition.
Handles health checks, room lookups and the real-time WebSocket channel.
"""

import logging
import uuid
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status

from src.core.exceptions import StoreUnavailableError
from src.services.dispatcher import dispatcher
from src.services.store import room_store

logger = logging.getLogger(__name__)

router = APIRouter()


# === PUBLIC ROUTES ===


@router.get("/health")
async def health_check() -> Dict[str, Any]:
    """Returns the service status"""
    store_ok = await room_store.ping()
    return {"status": "online", "store": "ok" if store_ok else "unavailable"}


@router.get("/rooms/{room_id}")
async def get_room(room_id: str) -> Dict[str, Any]:
    """
    Returns the current snapshot of a room plus its member count.
    """
    try:
        state = await room_store.load(room_id)
    except StoreUnavailableError as e:
        logger.error("Room lookup failed: %s", e)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Room store unavailable.")

    if state is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found.")

    return {"roomId": room_id, "memberCount": state.member_count, **state.snapshot()}


# === WebSocket Route ===


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """
    Real-time sync endpoint.
    Every frame is a JSON object `{"event": ..., "data": {...}}`; the client
    joins a room by sending `join-room`.
    """
    connection_id = uuid.uuid4().hex
    await dispatcher.connect(connection_id, websocket)
    try:
        while True:
            try:
                frame = await websocket.receive_json()
            except (ValueError, KeyError):
                # KeyError: binary frame, receive_json only reads text frames
                logger.debug("Ignoring non-JSON frame from %s", connection_id)
                continue

            if not isinstance(frame, dict):
                logger.debug("Ignoring malformed frame from %s", connection_id)
                continue

            await dispatcher.handle(connection_id, frame.get("event"), frame.get("data"))
    except WebSocketDisconnect:
        pass
    finally:
        await dispatcher.disconnect(connection_id)
