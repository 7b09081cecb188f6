"""
Room state machine.
Maps (current room state, event, actor) to (next state, outbound messages).
Pure logic: no store and no transport are touched here.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, cast

from src.core.events import (
    Audience,
    ChatPayload,
    EventPayload,
    EventType,
    LoadVideoPayload,
    OutboundEvent,
    OutboundMessage,
    TimePayload,
    error_message,
)
from src.core.exceptions import AuthorizationError, EventValidationError
from src.core.room_state import RoomState, Session

logger = logging.getLogger(__name__)

VIDEO_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{11}$")


@dataclass
class Transition:
    """
    Result of applying an event.

    Attributes:
        state: Room state after the event.
        messages: Outbound messages in delivery order.
        changed: Whether `state` must be persisted.
    """

    state: RoomState
    messages: List[OutboundMessage] = field(default_factory=list)
    changed: bool = False


Handler = Callable[[RoomState, Session, EventPayload, Sequence[str]], Transition]


def is_valid_video_id(video_id: str) -> bool:
    """YouTube style id: exactly 11 characters of [A-Za-z0-9_-]."""
    return isinstance(video_id, str) and VIDEO_ID_PATTERN.match(video_id) is not None


def _users(count: int) -> OutboundMessage:
    return OutboundMessage(event=OutboundEvent.USERS, data={"count": count}, audience=Audience.ROOM)


def _room_state(state: RoomState) -> OutboundMessage:
    return OutboundMessage(event=OutboundEvent.ROOM_STATE, data=state.snapshot(), audience=Audience.SENDER)


class RoomStateMachine:
    """
    Enumerated transitions of a room.

    Methods:
        apply: Entry point, converts validation and authorization errors into
            an actor-only error message.
        join, load_video, play, pause, seek, chat, request_sync, leave:
            One transition each. They raise on invalid input.
    """

    @staticmethod
    def apply(
        state: Optional[RoomState],
        event: EventType,
        actor: Session,
        payload: EventPayload,
        members: Sequence[str] = (),
    ) -> Transition:
        """
        Apply an event to a room.

        Args:
            state: Current state, or None when the room does not exist yet.
            event: The event to apply.
            actor: Session that triggered the event.
            payload: Validated event payload.
            members: Connection ids still bound to the room (used by leave).

        Returns:
            Transition: next state, messages and whether the state changed.
        """
        current = state if state is not None else RoomState()
        handler = _HANDLERS[event]
        try:
            transition = handler(current, actor, payload, members)
        except (EventValidationError, AuthorizationError) as e:
            logger.warning("Rejected %s from %s: %s", event.value, actor.connection_id, e)
            return Transition(state=current, messages=[error_message(str(e))])

        # A room that did not exist must be written even if nothing else changed
        if state is None:
            transition.changed = True
        return transition

    @staticmethod
    def join(state: RoomState, actor: Session, payload: EventPayload, members: Sequence[str] = ()) -> Transition:
        """First member of an empty room becomes moderator."""
        count = state.member_count + 1
        moderator = state.moderator_id
        # A stored moderator of an empty room is stale
        if not moderator or state.member_count == 0:
            moderator = actor.connection_id
            logger.info("%s is now moderator of %s", actor.connection_id, actor.room_id)

        new_state = state.model_copy(update={"member_count": count, "moderator_id": moderator})
        return Transition(
            state=new_state,
            messages=[_users(count), _room_state(new_state)],
            changed=True,
        )

    @staticmethod
    def load_video(state: RoomState, actor: Session, payload: EventPayload, members: Sequence[str] = ()) -> Transition:
        """Moderator only, as long as the room has a moderator."""
        video_id = cast(LoadVideoPayload, payload).video_id
        if state.moderator_id and actor.connection_id != state.moderator_id:
            raise AuthorizationError("Only moderator can load video")
        if not is_valid_video_id(video_id):
            raise EventValidationError("Invalid YouTube id")

        new_state = state.model_copy(update={"video_id": video_id, "position": 0.0, "playing": False})
        logger.info("Room %s loaded video %s", actor.room_id, video_id)
        return Transition(
            state=new_state,
            messages=[
                OutboundMessage(
                    event=OutboundEvent.LOAD_VIDEO, data={"videoId": video_id}, audience=Audience.ROOM
                )
            ],
            changed=True,
        )

    @staticmethod
    def _playback(
        state: RoomState, payload: EventPayload, outbound: OutboundEvent, playing: Optional[bool]
    ) -> Transition:
        time = cast(TimePayload, payload).time
        update: Dict[str, object] = {"position": time}
        if playing is not None:
            update["playing"] = playing
        new_state = state.model_copy(update=update)
        return Transition(
            state=new_state,
            messages=[
                OutboundMessage(event=outbound, data={"time": time}, audience=Audience.ROOM_EXCEPT_SENDER)
            ],
            changed=True,
        )

    @staticmethod
    def play(state: RoomState, actor: Session, payload: EventPayload, members: Sequence[str] = ()) -> Transition:
        return RoomStateMachine._playback(state, payload, OutboundEvent.PLAY, True)

    @staticmethod
    def pause(state: RoomState, actor: Session, payload: EventPayload, members: Sequence[str] = ()) -> Transition:
        return RoomStateMachine._playback(state, payload, OutboundEvent.PAUSE, False)

    @staticmethod
    def seek(state: RoomState, actor: Session, payload: EventPayload, members: Sequence[str] = ()) -> Transition:
        return RoomStateMachine._playback(state, payload, OutboundEvent.SEEK, None)

    @staticmethod
    def chat(state: RoomState, actor: Session, payload: EventPayload, members: Sequence[str] = ()) -> Transition:
        text = cast(ChatPayload, payload).text
        if not text.strip():
            raise EventValidationError("Message text required")
        return Transition(
            state=state,
            messages=[
                OutboundMessage(
                    event=OutboundEvent.CHAT,
                    data={"name": actor.display_name or "Anon", "text": text},
                    audience=Audience.ROOM,
                )
            ],
        )

    @staticmethod
    def request_sync(
        state: RoomState, actor: Session, payload: EventPayload, members: Sequence[str] = ()
    ) -> Transition:
        return Transition(state=state, messages=[_room_state(state)])

    @staticmethod
    def leave(state: RoomState, actor: Session, payload: EventPayload, members: Sequence[str] = ()) -> Transition:
        """
        Drop the actor from the room and re-elect the moderator if needed.
        The actor is ignored if still listed in `members`.
        """
        remaining = [m for m in members if m != actor.connection_id]
        count = max(0, state.member_count - 1)
        moderator = state.moderator_id

        if not remaining:
            count = 0
            moderator = ""
        else:
            # A bound member keeps the room non-empty
            count = max(count, 1)
            if moderator == actor.connection_id or moderator not in remaining:
                moderator = remaining[0]
                logger.info("Moderator of %s reassigned to %s", actor.room_id, moderator)

        new_state = state.model_copy(update={"member_count": count, "moderator_id": moderator})
        messages = [_users(count)] if count > 0 else []
        return Transition(state=new_state, messages=messages, changed=True)


_HANDLERS: Dict[EventType, Handler] = {
    EventType.JOIN: RoomStateMachine.join,
    EventType.LOAD_VIDEO: RoomStateMachine.load_video,
    EventType.PLAY: RoomStateMachine.play,
    EventType.PAUSE: RoomStateMachine.pause,
    EventType.SEEK: RoomStateMachine.seek,
    EventType.CHAT: RoomStateMachine.chat,
    EventType.REQUEST_SYNC: RoomStateMachine.request_sync,
    EventType.LEAVE: RoomStateMachine.leave,
}
