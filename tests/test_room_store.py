"""Unit tests for the Redis-backed room store."""

# pylint: disable=redefined-outer-name

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.core.exceptions import StoreUnavailableError
from src.core.room_state import RoomState
from src.services.store import RoomStore, decode_room, encode_room


@pytest.fixture
def mock_pipeline():
    """Pipeline commands are buffered synchronously, only execute() is awaited."""
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[1, 1])
    return pipe


@pytest.fixture
def mock_redis(mock_pipeline):
    redis = MagicMock()
    redis.hgetall = AsyncMock(return_value={})
    redis.ping = AsyncMock(return_value=True)
    redis.aclose = AsyncMock()

    pipeline_ctx = MagicMock()
    pipeline_ctx.__aenter__ = AsyncMock(return_value=mock_pipeline)
    pipeline_ctx.__aexit__ = AsyncMock(return_value=False)
    redis.pipeline.return_value = pipeline_ctx
    return redis


@pytest.fixture
def store(mock_redis):
    return RoomStore(mock_redis, key_prefix="room:", empty_room_ttl=86400)


def test_encode_room_uses_string_fields():
    state = RoomState(
        video_id="dQw4w9WgXcQ", position=12.5, playing=True, member_count=2, moderator_id="c1", queue=["x"]
    )

    assert encode_room(state) == {
        "videoId": "dQw4w9WgXcQ",
        "time": "12.5",
        "playing": "true",
        "membersCount": "2",
        "moderatorId": "c1",
        "queue": '["x"]',
    }


def test_decode_room_is_tolerant():
    """Garbled fields fall back to safe defaults instead of failing the load."""
    state = decode_room({"time": "abc", "membersCount": "-3", "playing": "yes", "queue": "{not json"})

    assert state == RoomState()


def test_decode_room_reads_encoded_fields():
    raw = {
        "videoId": "dQw4w9WgXcQ",
        "time": "7.25",
        "playing": "false",
        "membersCount": "1",
        "moderatorId": "c9",
        "queue": '["a", "b"]',
    }
    state = decode_room(raw)

    assert state.video_id == "dQw4w9WgXcQ"
    assert state.position == 7.25
    assert state.playing is False
    assert state.member_count == 1
    assert state.moderator_id == "c9"
    assert state.queue == ["a", "b"]


@pytest.mark.asyncio
async def test_load_missing_room(store, mock_redis):
    assert await store.load("r1") is None
    mock_redis.hgetall.assert_awaited_once_with("room:r1")


@pytest.mark.asyncio
async def test_load_existing_room(store, mock_redis):
    mock_redis.hgetall.return_value = {"videoId": "dQw4w9WgXcQ", "membersCount": "2", "moderatorId": "c1"}

    state = await store.load("r1")

    assert state is not None
    assert state.member_count == 2
    assert state.moderator_id == "c1"


@pytest.mark.asyncio
async def test_save_occupied_room_clears_expiry(store, mock_redis, mock_pipeline):
    state = RoomState(member_count=1, moderator_id="c1")

    await store.save("r1", state)

    mock_redis.pipeline.assert_called_once_with(transaction=True)
    mock_pipeline.hset.assert_called_once_with("room:r1", mapping=encode_room(state))
    mock_pipeline.persist.assert_called_once_with("room:r1")
    mock_pipeline.expire.assert_not_called()
    mock_pipeline.execute.assert_awaited_once()


@pytest.mark.asyncio
async def test_save_empty_room_schedules_expiry(store, mock_pipeline):
    await store.save("r1", RoomState())

    mock_pipeline.expire.assert_called_once_with("room:r1", 86400)
    mock_pipeline.persist.assert_not_called()


@pytest.mark.asyncio
async def test_load_failure_raises_store_unavailable(store, mock_redis):
    mock_redis.hgetall.side_effect = RedisConnectionError("down")

    with pytest.raises(StoreUnavailableError) as exc_info:
        await store.load("r1")

    assert exc_info.value.room_id == "r1"
    assert exc_info.value.operation == "load"


@pytest.mark.asyncio
async def test_save_failure_raises_store_unavailable(store, mock_pipeline):
    mock_pipeline.execute.side_effect = RedisConnectionError("down")

    with pytest.raises(StoreUnavailableError) as exc_info:
        await store.save("r1", RoomState())

    assert exc_info.value.operation == "save"


@pytest.mark.asyncio
async def test_ping(store, mock_redis):
    assert await store.ping() is True

    mock_redis.ping.side_effect = RedisConnectionError("down")
    assert await store.ping() is False
