"""
Room synchronization errors.

Everything raised by the core derives from RoomSyncError so the dispatcher
can turn failures into protocol messages (or drop them) in one place.
"""


class RoomSyncError(Exception):
    """Base class for all room synchronization errors."""


class EventValidationError(RoomSyncError):
    """Malformed event: bad media id, empty room id, blank chat text..."""


class AuthorizationError(RoomSyncError):
    """Actor is not allowed to perform the action."""


class NotBoundError(RoomSyncError):
    """Event received from a connection that has not joined a room."""

    def __init__(self, connection_id: str):
        self.connection_id = connection_id
        super().__init__(f"Connection {connection_id} is not bound to a room")


class StoreUnavailableError(RoomSyncError):
    """The persistence layer could not be reached."""

    def __init__(self, room_id: str, operation: str):
        self.room_id = room_id
        self.operation = operation
        super().__init__(f"Room store unavailable during {operation} of room {room_id}")
