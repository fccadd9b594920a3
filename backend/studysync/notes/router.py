"""Shared note router: read and replace the single note of a group.

Endpoints:
    GET /api/notes/{group_id} - Get the note (created empty on first access)
    PUT /api/notes/{group_id} - Replace the note (last write wins)
"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from starlette.concurrency import run_in_threadpool

from studysync.auth.dependencies import get_current_identity
from studysync.auth.schemas import Identity
from studysync.chat.events import get_event_router
from studysync.chat.router import require_group_member
from studysync.chat.schemas import NoteUpdate
from studysync.config import get_config
from studysync.errors import StudySyncError
from studysync.store import StudyStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notes", tags=["notes"])


@router.get("/{group_id}")
async def get_note(
    group_id: int,
    identity: Identity = Depends(get_current_identity),
) -> dict:
    """Get a group's shared note.

    Args:
        group_id: The group id.

    Returns:
        The note object (groupId, title, content, lastEditedBy, updatedAt).
    """
    await require_group_member(group_id, identity)

    store = StudyStore.get_instance(get_config().database.path)
    try:
        note = await run_in_threadpool(store.get_note, group_id, identity.user_id)
    except StudySyncError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e
    return note.to_response()


@router.put("/{group_id}")
async def put_note(
    group_id: int,
    body: NoteUpdate,
    identity: Identity = Depends(get_current_identity),
) -> dict:
    """Replace a group's shared note and push it to the live room.

    There is no sender connection to exclude here, so every live session in
    the group receives the note_update frame.
    """
    try:
        note = await get_event_router().update_note(identity, group_id, body.content)
    except StudySyncError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e

    logger.info(f"[Notes] Note for group {group_id} saved by user {identity.user_id}")
    return note.to_response()
