"""Live connection sessions.

A ConnectionSession is the server-side state of one open websocket, from
handshake to teardown: the verified identity, the rooms it has joined and
an outbound frame queue.

Outbound delivery:
    ``send_frame`` only enqueues. A per-session writer task drains the queue
    onto the socket one frame at a time, so frames reach the client in the
    order they were enqueued and a stalled client never holds up the
    connection that broadcast to it. The queue is bounded; when it is full
    new frames for that session are dropped with a DeliveryError.
"""
import asyncio
import logging
import uuid
from typing import Awaitable, Callable, Dict, Optional, Set

from studysync.auth.schemas import Identity
from studysync.errors import DeliveryError

logger = logging.getLogger(__name__)

SendFn = Callable[[dict], Awaitable[None]]


class ConnectionSession:
    """State for one authenticated connection.

    Attributes:
        id: Server-generated session id (used in logs).
        identity: Verified identity, immutable for the session's lifetime.
        joined_rooms: Room ids this session has successfully joined.
        terminated: True once teardown has started; no more frames are queued.
    """

    def __init__(self, identity: Identity, send: SendFn, max_pending: int = 256) -> None:
        self.id = str(uuid.uuid4())
        self.identity = identity
        self.joined_rooms: Set[int] = set()
        self.terminated = False
        self._send = send
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self._writer: Optional[asyncio.Task] = None

    @property
    def user_id(self) -> int:
        return self.identity.user_id

    def start(self) -> None:
        """Start the writer task that delivers queued frames."""
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop())

    def send_frame(self, frame: dict) -> None:
        """Queue one frame for delivery to the client.

        Raises:
            DeliveryError: If the session is terminated or its queue is full.
        """
        if self.terminated:
            raise DeliveryError(f"Session {self.id} is closed")
        try:
            self._outbox.put_nowait(frame)
        except asyncio.QueueFull:
            raise DeliveryError(
                f"Outbound queue full for session {self.id}; dropping {frame.get('type')}"
            ) from None

    async def _write_loop(self) -> None:
        while True:
            frame = await self._outbox.get()
            try:
                await self._send(frame)
            except Exception as e:
                logger.debug(f"[Sessions] Send to session {self.id} failed: {e}")
            finally:
                self._outbox.task_done()

    async def close(self) -> None:
        """Stop the writer task; frames still queued are discarded."""
        self.terminated = True
        if self._writer is None:
            return
        self._writer.cancel()
        try:
            await self._writer
        except asyncio.CancelledError:
            pass
        self._writer = None

    def __repr__(self) -> str:
        return f"ConnectionSession(id={self.id!r}, user_id={self.user_id})"


class SessionRegistry:
    """Process-wide index of live sessions.

    All methods run on the event loop without awaiting, so each call is
    atomic with respect to other connection tasks.
    """

    def __init__(self) -> None:
        # session id -> session
        self._sessions: Dict[str, ConnectionSession] = {}

    def register(self, session: ConnectionSession) -> None:
        self._sessions[session.id] = session
        logger.info(
            f"[Sessions] Registered {session.id} for user {session.user_id} "
            f"({len(self)} live)"
        )

    def unregister(self, session: ConnectionSession) -> bool:
        """Remove a session. Returns False if it was not registered."""
        removed = self._sessions.pop(session.id, None) is not None
        if removed:
            logger.info(f"[Sessions] Unregistered {session.id} ({len(self)} live)")
        return removed

    def __contains__(self, session: ConnectionSession) -> bool:
        return session.id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def clear(self) -> None:
        """Forget every session (used by tests)."""
        self._sessions.clear()


# Global registry shared by all websocket handlers
sessions = SessionRegistry()
