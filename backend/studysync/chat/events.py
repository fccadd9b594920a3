"""Inbound frame routing.

Parses each inbound text frame, dispatches it by ``type`` and runs the
authorize -> persist -> broadcast sequence for it. Frames of one connection
are handled strictly one after another by that connection's task; storage
calls run in the threadpool so other connections keep flowing meanwhile.

Failure handling per frame:
    - unparseable JSON, non-object payloads, unknown types: logged, dropped
    - FrameValidationError / AuthorizationError / PersistenceError: reported
      to the sender only with an error frame, nothing broadcast
    - anything else: logged with traceback, connection stays open
"""
import json
import logging
from typing import Awaitable, Callable, Dict, Optional

from starlette.concurrency import run_in_threadpool

from studysync.auth.schemas import Identity
from studysync.config import get_config
from studysync.errors import DeliveryError, FrameValidationError, StudySyncError
from studysync.membership import MembershipOracle, get_oracle
from studysync.store import ChatMessage, SharedNote, StudyStore

from .manager import RoomRegistry, rooms
from .schemas import (
    FrameType,
    error_frame,
    membership_frame,
    message_frame,
    note_frame,
)
from .session import ConnectionSession

logger = logging.getLogger(__name__)

Handler = Callable[[ConnectionSession, dict], Awaitable[None]]

# group ids are stored in INTEGER columns
MAX_ROOM_ID = 2 ** 31 - 1


def parse_room_id(frame: dict) -> int:
    """Extract ``groupId`` as an int; decimal strings are accepted."""
    value = frame.get("groupId")
    if isinstance(value, str) and value.strip().isdecimal():
        value = int(value.strip())
    if isinstance(value, bool) or not isinstance(value, int):
        raise FrameValidationError("groupId must be an integer")
    if not 0 <= value <= MAX_ROOM_ID:
        raise FrameValidationError("groupId is out of range")
    return value


def parse_content(frame: dict) -> str:
    content = frame.get("content")
    if not isinstance(content, str):
        raise FrameValidationError("content must be a string")
    return content


class EventRouter:
    """Dispatches inbound frames and implements the room operations.

    The ``post_message`` and ``update_note`` operations are also used by the
    HTTP routers, so both transports share one authorization and fan-out path.

    Args:
        registry: Live room registry used for join/leave/broadcast.
        oracle: Membership oracle consulted on every join and every write.
        store: Persistence gateway for messages and notes.
        max_message_length: Upper bound on chat message length.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        oracle: MembershipOracle,
        store: StudyStore,
        max_message_length: int = 10000,
    ) -> None:
        self.registry = registry
        self.oracle = oracle
        self.store = store
        self.max_message_length = max_message_length
        self._handlers: Dict[str, Handler] = {
            FrameType.JOIN_GROUP.value: self._on_join_group,
            FrameType.LEAVE_GROUP.value: self._on_leave_group,
            FrameType.MESSAGE.value: self._on_message,
            FrameType.NOTE_UPDATE.value: self._on_note_update,
        }

    # =========================================================================
    # Frame dispatch
    # =========================================================================

    async def handle_text(self, session: ConnectionSession, raw: str) -> None:
        """Parse and handle one inbound text frame. Never raises."""
        try:
            frame = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"[WS] Dropping unparseable frame from session {session.id}: {e}")
            return

        if not isinstance(frame, dict):
            logger.warning(f"[WS] Dropping non-object frame from session {session.id}")
            return

        await self.handle_frame(session, frame)

    async def handle_frame(self, session: ConnectionSession, frame: dict) -> None:
        """Dispatch one decoded frame. Never raises."""
        frame_type = frame.get("type")
        handler = self._handlers.get(frame_type) if isinstance(frame_type, str) else None
        if handler is None:
            logger.warning(
                f"[WS] Dropping frame with unknown type {frame_type!r} "
                f"from session {session.id}"
            )
            return

        logger.debug("[WS] Session %s received: type=%s", session.id, frame_type)
        try:
            await handler(session, frame)
        except StudySyncError as e:
            logger.info(
                f"[WS] {frame_type} from user {session.user_id} rejected: {e.message}"
            )
            self._reply(session, error_frame(e.message))
        except Exception:
            logger.exception(
                f"[WS] Unexpected error handling {frame_type} from session {session.id}"
            )
            self._reply(session, error_frame("Internal server error"))

    def _reply(self, session: ConnectionSession, frame: dict) -> None:
        """Unicast to the sender; a gone sender is not an error."""
        try:
            session.send_frame(frame)
        except DeliveryError as e:
            logger.debug(f"[WS] {e.message}")

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _on_join_group(self, session: ConnectionSession, frame: dict) -> None:
        room_id = parse_room_id(frame)
        await self._require_member(session.identity, room_id)

        await self.registry.join(room_id, session)
        session.joined_rooms.add(room_id)
        self._reply(session, membership_frame(FrameType.JOINED, room_id))

    async def _on_leave_group(self, session: ConnectionSession, frame: dict) -> None:
        room_id = parse_room_id(frame)
        await self.registry.leave(room_id, session)
        session.joined_rooms.discard(room_id)
        self._reply(session, membership_frame(FrameType.LEFT, room_id))

    async def _on_message(self, session: ConnectionSession, frame: dict) -> None:
        await self.post_message(
            session.identity, parse_room_id(frame), parse_content(frame)
        )

    async def _on_note_update(self, session: ConnectionSession, frame: dict) -> None:
        await self.update_note(
            session.identity, parse_room_id(frame), parse_content(frame), sender=session
        )

    # =========================================================================
    # Room operations (shared with the HTTP routers)
    # =========================================================================

    async def post_message(
        self, identity: Identity, room_id: int, content: str
    ) -> ChatMessage:
        """Validate, authorize, persist, then broadcast a chat message.

        The broadcast goes to every live session in the room, the sender
        included, so every client renders the same persisted record.

        Raises:
            FrameValidationError: Empty, whitespace-only or oversized content.
            AuthorizationError: Sender is not a member of the room.
            PersistenceError: The store rejected the write; nothing is sent.
        """
        content = content.strip()
        if not content:
            raise FrameValidationError("Message content is required and cannot be empty")
        if len(content) > self.max_message_length:
            raise FrameValidationError(
                f"Message content exceeds {self.max_message_length} characters"
            )

        await self._require_member(identity, room_id)

        message = await run_in_threadpool(
            self.store.append_chat_message,
            room_id,
            identity.user_id,
            content,
            identity.display_name,
        )
        delivered = await self.registry.broadcast(room_id, message_frame(message))
        logger.info(
            f"[WS] Message {message.id} from user {identity.user_id} in room {room_id} "
            f"queued for {delivered} sessions"
        )
        return message

    async def update_note(
        self,
        identity: Identity,
        room_id: int,
        content: str,
        sender: Optional[ConnectionSession] = None,
    ) -> SharedNote:
        """Authorize, overwrite the room's note, then broadcast it.

        The note row is replaced unconditionally (last write wins). The
        broadcast skips ``sender``, which already holds the text it typed.

        Raises:
            AuthorizationError: Editor is not a member of the room.
            PersistenceError: The store rejected the write; nothing is sent.
        """
        await self._require_member(identity, room_id)

        note = await run_in_threadpool(
            self.store.upsert_note, room_id, content, identity.user_id
        )
        exclude = (sender,) if sender is not None else ()
        delivered = await self.registry.broadcast(room_id, note_frame(note), exclude=exclude)
        logger.info(
            f"[WS] Note for room {room_id} updated by user {identity.user_id}; "
            f"queued for {delivered} sessions"
        )
        return note

    async def _require_member(self, identity: Identity, room_id: int) -> None:
        await run_in_threadpool(self.oracle.require, identity, room_id)


def get_event_router() -> EventRouter:
    """Build an EventRouter over the process-wide registry and services."""
    config = get_config()
    return EventRouter(
        registry=rooms,
        oracle=get_oracle(),
        store=StudyStore.get_instance(config.database.path),
        max_message_length=config.rooms.max_message_length,
    )
