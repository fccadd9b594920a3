"""Connection lifecycle: handshake and teardown.

Handshake:
    credential -> CredentialVerifier -> Identity. A rejected credential
    closes the socket before it is accepted: no session, no frames. An
    accepted one gets a "connected" frame, then a registered ConnectionSession
    whose writer task delivers every later frame.

Teardown:
    Runs once the connection's receive loop has stopped. Removes the session
    from every room it joined, unregisters it and stops its writer task.
    Idempotent, so it is safe to call from any error path.
"""
import logging
from typing import Optional

from fastapi import WebSocket, status
from starlette.concurrency import run_in_threadpool

from studysync.auth import get_verifier
from studysync.config import get_config
from studysync.errors import AuthenticationError

from .manager import RoomRegistry, rooms
from .schemas import connected_frame
from .session import ConnectionSession, SessionRegistry, sessions

logger = logging.getLogger(__name__)


class LifecycleManager:
    """Owns sessions from handshake to teardown.

    Args:
        session_registry: Process-wide index of live sessions.
        room_registry: Room registry to clean up on teardown.
    """

    def __init__(
        self, session_registry: SessionRegistry, room_registry: RoomRegistry
    ) -> None:
        self.sessions = session_registry
        self.rooms = room_registry

    async def handshake(
        self, websocket: WebSocket, credential: Optional[str]
    ) -> Optional[ConnectionSession]:
        """Authenticate a new connection.

        Returns:
            The registered session, or None if the connection was refused
            (it has already been closed in that case).
        """
        try:
            identity = await run_in_threadpool(get_verifier().verify, credential)
        except AuthenticationError as e:
            logger.warning(f"[WS] Handshake refused: {e.message}")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return None

        await websocket.accept()
        try:
            await websocket.send_json(connected_frame(identity))
        except Exception as e:
            logger.info(f"[WS] Client left during handshake: {e}")
            return None

        session = ConnectionSession(
            identity,
            websocket.send_json,
            max_pending=get_config().rooms.outbound_queue_size,
        )
        session.start()
        self.sessions.register(session)

        logger.info(
            f"[WS] Connection accepted for user {identity.user_id} "
            f"({identity.display_name}), session {session.id}"
        )
        return session

    async def teardown(self, session: ConnectionSession) -> None:
        """Remove a session from every joined room and unregister it."""
        if session.terminated:
            return
        session.terminated = True

        for room_id in list(session.joined_rooms):
            await self.rooms.leave(room_id, session)
        session.joined_rooms.clear()
        self.sessions.unregister(session)
        await session.close()
        logger.info(f"[WS] Session {session.id} torn down")


# Global lifecycle manager shared by all websocket handlers
lifecycle = LifecycleManager(sessions, rooms)
