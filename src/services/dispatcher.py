"""
Event dispatcher.
Routes inbound client events through the room state machine, persists the
result and fans the outbound messages out to their audience.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, cast

from fastapi import WebSocket

from src.config.settings import settings
from src.core.events import (
    Audience,
    EmptyPayload,
    EventPayload,
    EventType,
    JoinRoomPayload,
    OutboundMessage,
    error_message,
    parse_event,
    parse_payload,
)
from src.core.exceptions import EventValidationError, NotBoundError, StoreUnavailableError
from src.core.room_state import Session
from src.core.state_machine import RoomStateMachine
from src.services.registry import SessionRegistry, require_room_id
from src.services.store import RoomStore, room_store
from src.services.websocket import ConnectionManager, manager

logger = logging.getLogger(__name__)


class EventDispatcher:
    """
    Glues the transport, the session registry, the room store and the
    state machine together. One instance serves every room of the process.
    """

    def __init__(
        self,
        store: RoomStore,
        connections: ConnectionManager,
        registry: Optional[SessionRegistry] = None,
        serialize_rooms: bool = True,
    ):
        self.store = store
        self.connections = connections
        self.registry = registry or SessionRegistry()
        self.serialize_rooms = serialize_rooms
        self._room_locks: Dict[str, asyncio.Lock] = {}
        # Holders plus waiters of each room lock
        self._room_lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _room_lock(self, room_id: str) -> AsyncIterator[None]:
        """Serializes load-compute-save for one room inside this process."""
        if not self.serialize_rooms:
            yield
            return

        lock = self._room_locks.setdefault(room_id, asyncio.Lock())
        self._room_lock_users[room_id] = self._room_lock_users.get(room_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._room_lock_users[room_id] -= 1
            if not self._room_lock_users[room_id]:
                del self._room_lock_users[room_id]
                del self._room_locks[room_id]

    # === Connection lifecycle ===

    async def connect(self, connection_id: str, websocket: WebSocket) -> None:
        await self.connections.connect(connection_id, websocket)

    async def disconnect(self, connection_id: str) -> None:
        """
        Connection closed: forget the socket and run the leave transition.
        """
        self.connections.disconnect(connection_id)
        session = self.registry.unbind(connection_id)
        if session is None:
            return

        room_id = session.room_id
        try:
            async with self._room_lock(room_id):
                state = await self.store.load(room_id)
                if state is None:
                    logger.warning("Room %s vanished before %s left", room_id, connection_id)
                    return
                members = self.registry.members(room_id)
                transition = RoomStateMachine.apply(state, EventType.LEAVE, session, EmptyPayload(), members)
                await self.store.save(room_id, transition.state)
        except StoreUnavailableError as e:
            logger.error("Dropped leave of %s: %s", connection_id, e)
            return

        logger.info("%s left room %s (%d members)", connection_id, room_id, transition.state.member_count)
        await self._deliver(session, transition.messages)

    # === Inbound events ===

    async def handle(self, connection_id: str, event_name: Any, data: Any = None) -> None:
        """
        Processes one inbound event. Never raises for client mistakes or
        store failures: those become error messages or log entries.
        """
        try:
            event = parse_event(event_name)
            if event is EventType.JOIN:
                payload = cast(JoinRoomPayload, parse_payload(event, data))
                await self._join(connection_id, payload)
                return

            session = self.registry.require(connection_id)
            payload = parse_payload(event, data)
            await self._run(session, event, payload)

        except NotBoundError:
            logger.debug("Dropped %s from unbound connection %s", event_name, connection_id)
        except EventValidationError as e:
            logger.warning("Rejected %s from %s: %s", event_name, connection_id, e)
            await self.connections.send(connection_id, error_message(str(e)))
        except StoreUnavailableError as e:
            logger.error("Dropped %s from %s: %s", event_name, connection_id, e)

    async def _join(self, connection_id: str, payload: JoinRoomPayload) -> None:
        existing = self.registry.get(connection_id)
        if existing is not None:
            # Already a member: membership is unchanged, only resync the client
            await self._run(existing, EventType.REQUEST_SYNC, EmptyPayload())
            return

        room_id = require_room_id(payload.room_id)
        async with self._room_lock(room_id):
            # Bound under the lock: a queued leave must not count a member
            # whose join has not been stored yet
            session = self.registry.bind(connection_id, room_id, payload.name)
            try:
                state = await self.store.load(room_id)
                transition = RoomStateMachine.apply(state, EventType.JOIN, session, payload)
                await self.store.save(room_id, transition.state)
            except StoreUnavailableError:
                # The stored count never saw this member, so neither may the registry
                self.registry.unbind(connection_id)
                raise

        logger.info("%s joined room %s (%d members)", connection_id, room_id, transition.state.member_count)
        await self._deliver(session, transition.messages)

    async def _run(self, session: Session, event: EventType, payload: EventPayload) -> None:
        room_id = session.room_id
        async with self._room_lock(room_id):
            state = await self.store.load(room_id)
            if state is None:
                logger.warning("Dropped %s: room %s not found", event.value, room_id)
                return
            transition = RoomStateMachine.apply(state, event, session, payload)
            if transition.changed:
                await self.store.save(room_id, transition.state)

        await self._deliver(session, transition.messages)

    # === Fan-out ===

    def _recipients(self, session: Session, audience: Audience) -> List[str]:
        if audience is Audience.SENDER:
            return [session.connection_id]

        members = self.registry.members(session.room_id)
        if audience is Audience.ROOM_EXCEPT_SENDER:
            return [m for m in members if m != session.connection_id]
        return members

    async def _deliver(self, session: Session, messages: List[OutboundMessage]) -> None:
        for message in messages:
            await self.connections.send_many(self._recipients(session, message.audience), message)


# Singleton instance
dispatcher = EventDispatcher(room_store, manager, serialize_rooms=settings.serialize_room_events)
