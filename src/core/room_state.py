"""
Define the shared room state and the per-connection session.
"""

from dataclasses import dataclass
from typing import Any, Dict, List

from pydantic import BaseModel, Field


class RoomState(BaseModel):
    """Authoritative playback state of a room."""

    video_id: str = ""
    position: float = Field(default=0.0, ge=0)
    playing: bool = False
    member_count: int = Field(default=0, ge=0)
    moderator_id: str = ""
    queue: List[str] = Field(default_factory=list)

    def snapshot(self) -> Dict[str, Any]:
        """Payload of the `room-state` message. Empty ids are sent as null."""
        return {
            "videoId": self.video_id or None,
            "time": self.position,
            "playing": self.playing,
            "moderatorId": self.moderator_id or None,
            "queue": list(self.queue),
        }


@dataclass
class Session:
    """
    A connection bound to a room under a display name.
    """

    connection_id: str
    display_name: str
    room_id: str
