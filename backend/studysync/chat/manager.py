"""Room registry: room id -> live sessions.

This module tracks which live sessions have joined which rooms and fans
frames out to them. It is the only structure mutated by many connection
tasks at once.

Key features:
    - Multiple rooms, each with an independent live set
    - One asyncio.Lock per occupied room guarding join/leave and the
      broadcast snapshot; the lock is dropped together with the room
    - Broadcast only enqueues on each target session; delivery happens on
      the target's own writer task
    - Best-effort sends: a dropped frame is logged, never retried, and
      never evicts the session (eviction only happens via leave/teardown)

Thread Safety:
    Designed for async/await usage with a single event loop. It is NOT
    thread-safe for concurrent access from multiple threads.
"""
import asyncio
import logging
from typing import Dict, Iterable, Set

from studysync.errors import DeliveryError

from .session import ConnectionSession

logger = logging.getLogger(__name__)


class RoomRegistry:
    """Maps room ids to the sessions currently live in them."""

    def __init__(self) -> None:
        """Initialize an empty registry."""
        # room_id -> live sessions
        self._rooms: Dict[int, Set[ConnectionSession]] = {}

        # room_id -> lock, present only while the room is in _rooms
        self._locks: Dict[int, asyncio.Lock] = {}

    def _lock_for(self, room_id: int) -> asyncio.Lock:
        lock = self._locks.get(room_id)
        if lock is None:
            lock = self._locks[room_id] = asyncio.Lock()
        return lock

    async def join(self, room_id: int, session: ConnectionSession) -> bool:
        """Add a session to a room's live set.

        Returns:
            True if the session was added, False if it was already live there.
        """
        async with self._lock_for(room_id):
            members = self._rooms.setdefault(room_id, set())
            if session in members:
                return False
            members.add(session)
            # a waiter may hold a lock that a concurrent leave already dropped
            self._locks.setdefault(room_id, asyncio.Lock())
            logger.info(
                f"[Rooms] Session {session.id} (user {session.user_id}) joined room "
                f"{room_id}; {len(members)} live"
            )
            return True

    async def leave(self, room_id: int, session: ConnectionSession) -> bool:
        """Remove a session from a room's live set.

        Returns:
            True if the session was removed, False if it was not live there.
        """
        if room_id not in self._rooms:
            return False
        async with self._lock_for(room_id):
            members = self._rooms.get(room_id)
            if not members or session not in members:
                return False
            members.discard(session)
            if not members:
                del self._rooms[room_id]
                self._locks.pop(room_id, None)
            logger.info(
                f"[Rooms] Session {session.id} left room {room_id}; "
                f"{len(members)} live"
            )
            return True

    async def broadcast(
        self,
        room_id: int,
        frame: dict,
        exclude: Iterable[ConnectionSession] = (),
    ) -> int:
        """Queue a frame for every live session in a room.

        Args:
            room_id: Room to broadcast to.
            frame: JSON-serializable frame.
            exclude: Sessions that must not receive the frame (e.g. the sender
                of a note update).

        Returns:
            Number of sessions the frame was queued for.
        """
        if room_id not in self._rooms:
            return 0
        excluded = set(exclude)
        async with self._lock_for(room_id):
            targets = [
                s for s in self._rooms.get(room_id, ())
                if s not in excluded
            ]

        delivered = sum(1 for session in targets if self._safe_send(session, frame))
        if delivered < len(targets):
            logger.warning(
                f"[Rooms] Queued {frame.get('type')} for {delivered}/{len(targets)} "
                f"sessions in room {room_id}"
            )
        return delivered

    def _safe_send(self, session: ConnectionSession, frame: dict) -> bool:
        """Queue a frame for one session.

        Returns:
            True if queued, False if the session refused it.
        """
        try:
            session.send_frame(frame)
            return True
        except DeliveryError as e:
            logger.debug(f"[Rooms] {e.message}")
            return False

    def clear(self) -> None:
        """Drop every room (used by tests)."""
        self._rooms.clear()
        self._locks.clear()


# Global registry shared by all websocket handlers
rooms = RoomRegistry()
