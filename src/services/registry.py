"""
Session registry.
Tracks which connection belongs to which room and under which display name.
"""

import logging
import random
from typing import Dict, List, Optional, Set

from src.core.exceptions import EventValidationError, NotBoundError
from src.core.room_state import Session

logger = logging.getLogger(__name__)


def require_room_id(room_id: Optional[str]) -> str:
    """Rejects missing or blank room ids."""
    if not room_id or not room_id.strip():
        raise EventValidationError("roomId required")
    return room_id


def default_display_name() -> str:
    """Name given to users that did not pick one."""
    return f"User{random.randint(1000, 9999)}"


class SessionRegistry:
    """In-memory map of connection ids to sessions, indexed by room."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._rooms: Dict[str, Set[str]] = {}

    def bind(self, connection_id: str, room_id: str, display_name: Optional[str] = None) -> Session:
        """
        Binds a connection to a room.
        Idempotent per connection: the first bind wins and later calls
        return the existing session untouched.
        """
        existing = self._sessions.get(connection_id)
        if existing:
            return existing

        room_id = require_room_id(room_id)
        name = display_name.strip() if display_name and display_name.strip() else default_display_name()
        session = Session(connection_id=connection_id, display_name=name, room_id=room_id)

        self._sessions[connection_id] = session
        self._rooms.setdefault(room_id, set()).add(connection_id)
        logger.info("%s (%s) bound to room %s", connection_id, name, room_id)
        return session

    def unbind(self, connection_id: str) -> Optional[Session]:
        """
        Removes the session of a connection and returns it,
        or None if the connection was never bound.
        """
        session = self._sessions.pop(connection_id, None)
        if session is None:
            return None

        room = self._rooms.get(session.room_id)
        if room is not None:
            room.discard(connection_id)
            if not room:
                del self._rooms[session.room_id]
        return session

    def get(self, connection_id: str) -> Optional[Session]:
        return self._sessions.get(connection_id)

    def require(self, connection_id: str) -> Session:
        """Returns the bound session or raises NotBoundError."""
        session = self._sessions.get(connection_id)
        if session is None:
            raise NotBoundError(connection_id)
        return session

    def is_bound(self, connection_id: str) -> bool:
        return connection_id in self._sessions

    def members(self, room_id: str) -> List[str]:
        """Connection ids currently bound to a room."""
        return sorted(self._rooms.get(room_id, ()))
