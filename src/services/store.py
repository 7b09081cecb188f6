"""
Room store backed by Redis hashes.
One hash per room, with expiry for empty rooms.
"""

import json
import logging
from typing import Dict, List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from src.config.settings import settings
from src.core.exceptions import StoreUnavailableError
from src.core.room_state import RoomState

logger = logging.getLogger(__name__)


def _to_float(value: Optional[str]) -> float:
    try:
        number = float(value) if value else 0.0
    except ValueError:
        return 0.0
    # NaN fails every comparison, so it is mapped to 0 too
    return number if number > 0 and number != float("inf") else 0.0


def _to_int(value: Optional[str]) -> int:
    try:
        return max(0, int(float(value))) if value else 0
    except (ValueError, OverflowError):
        return 0


def _to_queue(value: Optional[str]) -> List[str]:
    if not value:
        return []
    try:
        queue = json.loads(value)
    except json.JSONDecodeError:
        return []
    return [str(item) for item in queue] if isinstance(queue, list) else []


def encode_room(state: RoomState) -> Dict[str, str]:
    """Field-level string encoding of a room hash."""
    return {
        "videoId": state.video_id,
        "time": repr(float(state.position)),
        "playing": "true" if state.playing else "false",
        "membersCount": str(state.member_count),
        "moderatorId": state.moderator_id,
        "queue": json.dumps(state.queue),
    }


def decode_room(data: Dict[str, str]) -> RoomState:
    """Inverse of encode_room, tolerant to missing or garbled fields."""
    return RoomState(
        video_id=data.get("videoId") or "",
        position=_to_float(data.get("time")),
        playing=data.get("playing") == "true",
        member_count=_to_int(data.get("membersCount")),
        moderator_id=data.get("moderatorId") or "",
        queue=_to_queue(data.get("queue")),
    )


class RoomStore:
    """Load and save room states. All access is scoped to a single room key."""

    def __init__(
        self,
        client: "redis.Redis",
        key_prefix: str = "room:",
        empty_room_ttl: int = 60 * 60 * 24,
    ):
        self.client = client
        self.key_prefix = key_prefix
        self.empty_room_ttl = empty_room_ttl

    def key(self, room_id: str) -> str:
        return f"{self.key_prefix}{room_id}"

    async def load(self, room_id: str) -> Optional[RoomState]:
        """
        Returns the state of a room, or None if the room does not exist.
        """
        try:
            data = await self.client.hgetall(self.key(room_id))
        except RedisError as e:
            raise StoreUnavailableError(room_id, "load") from e

        if not data:
            return None
        return decode_room(data)

    async def save(self, room_id: str, state: RoomState) -> None:
        """
        Writes the room hash and applies the retention policy:
        empty rooms expire after the retention window, others never expire.
        Both commands go through one MULTI/EXEC so no partial write is visible.
        """
        key = self.key(room_id)
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.hset(key, mapping=encode_room(state))
                if state.member_count == 0:
                    pipe.expire(key, self.empty_room_ttl)
                else:
                    pipe.persist(key)
                await pipe.execute()
        except RedisError as e:
            raise StoreUnavailableError(room_id, "save") from e

        if state.member_count == 0:
            logger.info("Room %s is empty, expires in %ds", room_id, self.empty_room_ttl)

    async def ping(self) -> bool:
        """True if Redis answers."""
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.warning("Redis ping failed: %s", e)
            return False

    async def close(self) -> None:
        await self.client.aclose()


redis_client = redis.from_url(settings.redis_url, decode_responses=True)  # type: ignore[no-untyped-call]

# Singleton instance
room_store = RoomStore(
    redis_client,
    key_prefix=settings.room_key_prefix,
    empty_room_ttl=settings.empty_room_ttl_seconds,
)
