"""Chat router providing WebSocket and HTTP endpoints.

This module provides:
    - WebSocket /ws?token=...: Realtime group chat and note sync
    - GET  /api/groups/{group_id}/messages: Paginated message history
    - POST /api/groups/{group_id}/messages: Post a message over HTTP

Protocol Flow:
    1. Client connects with its credential in the query string
       → refused: socket closed (1008) before accept, no frames
       → accepted: {type: "connected", userId, userName}
    2. Client sends: {type: "join_group", groupId}
       → {type: "joined", groupId} or {type: "error", message}
    3. Client sends: {type: "message", groupId, content}
       → every live member (sender included) gets {type: "message", ...}
    4. Client sends: {type: "note_update", groupId, content}
       → every other live member gets {type: "note_update", groupId, content}
    5. On disconnect → session removed from every joined room
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from studysync.auth.dependencies import get_current_identity
from studysync.auth.schemas import Identity
from studysync.config import get_config
from studysync.errors import StudySyncError
from studysync.membership import get_oracle
from studysync.store import StudyStore

from .events import get_event_router
from .lifecycle import lifecycle
from .schemas import MessageCreate

logger = logging.getLogger(__name__)

router = APIRouter()


async def require_group_member(group_id: int, identity: Identity) -> None:
    """Translate a membership refusal into a 403 for HTTP callers."""
    try:
        await run_in_threadpool(get_oracle().require, identity, group_id)
    except StudySyncError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e


@router.get("/api/groups/{group_id}/messages")
async def get_message_history(
    group_id: int,
    limit: Optional[int] = Query(None, ge=1, description="Number of messages to return"),
    offset: int = Query(0, ge=0, description="Number of messages to skip"),
    identity: Identity = Depends(get_current_identity),
) -> List[dict]:
    """Get a page of a group's message history, oldest first.

    Clients call this to hydrate a chat view before the websocket delivers
    incremental messages.

    Args:
        group_id: The group id.
        limit: Page size (defaults to rooms.history_page_size, capped at
               rooms.history_max_page_size).
        offset: Messages to skip from the oldest.

    Example:
        GET /api/groups/7/messages?limit=50&offset=0
    """
    await require_group_member(group_id, identity)

    rooms_cfg = get_config().rooms
    page_size = min(limit or rooms_cfg.history_page_size, rooms_cfg.history_max_page_size)

    store = StudyStore.get_instance(get_config().database.path)
    try:
        messages = await run_in_threadpool(store.get_messages, group_id, page_size, offset)
    except StudySyncError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e

    return [msg.to_frame() for msg in messages]


@router.post("/api/groups/{group_id}/messages", status_code=201)
async def post_message(
    group_id: int,
    body: MessageCreate,
    identity: Identity = Depends(get_current_identity),
) -> JSONResponse:
    """Persist a message and broadcast it to the group's live sessions.

    Returns:
        The created message (201 Created).
    """
    try:
        message = await get_event_router().post_message(identity, group_id, body.content)
    except StudySyncError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e

    return JSONResponse(message.to_frame(), status_code=201)


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint multiplexing every group a user has joined.

    The credential is read from the query parameter named by
    ``auth.token_query_param`` (default ``token``).
    """
    credential = websocket.query_params.get(get_config().auth.token_query_param)
    session = await lifecycle.handshake(websocket, credential)
    if session is None:
        return

    events = get_event_router()
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(
                    f"[WS] Session {session.id} disconnected (code={message.get('code')})"
                )
                break

            raw = message.get("text")
            if raw is None and message.get("bytes") is not None:
                try:
                    raw = message["bytes"].decode("utf-8")
                except UnicodeDecodeError:
                    logger.warning(f"[WS] Dropping non-UTF-8 frame from session {session.id}")
                    continue
            if raw is None:
                continue

            await events.handle_text(session, raw)
    finally:
        await lifecycle.teardown(session)
