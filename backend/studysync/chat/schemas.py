"""Wire frames and request bodies for the realtime chat protocol.

Client -> server:
    {type: "join_group", groupId}
    {type: "leave_group", groupId}
    {type: "message", groupId, content}
    {type: "note_update", groupId, content}

Server -> client:
    {type: "connected", userId, userName}
    {type: "joined", groupId} / {type: "left", groupId}   (sender only)
    {type: "message", id, groupId, userId, userName, content, createdAt}
    {type: "note_update", groupId, content}
    {type: "error", message}                              (sender only)
"""
from enum import Enum

from pydantic import BaseModel, Field

from studysync.auth.schemas import Identity
from studysync.store.schemas import ChatMessage, SharedNote


class FrameType(str, Enum):
    """Type tag carried by every frame.

    Attributes:
        JOIN_GROUP: Client asks to join a room's live set.
        LEAVE_GROUP: Client leaves a room's live set.
        MESSAGE: Chat message (inbound request and outbound broadcast).
        NOTE_UPDATE: Shared note edit (inbound request and outbound broadcast).
        CONNECTED: Handshake acknowledgement.
        JOINED: Join acknowledgement.
        LEFT: Leave acknowledgement.
        ERROR: Unicast error report.
    """
    JOIN_GROUP = "join_group"
    LEAVE_GROUP = "leave_group"
    MESSAGE = "message"
    NOTE_UPDATE = "note_update"
    CONNECTED = "connected"
    JOINED = "joined"
    LEFT = "left"
    ERROR = "error"


def connected_frame(identity: Identity) -> dict:
    return {
        "type": FrameType.CONNECTED.value,
        "userId": identity.user_id,
        "userName": identity.display_name,
    }


def membership_frame(frame_type: FrameType, room_id: int) -> dict:
    return {"type": frame_type.value, "groupId": room_id}


def message_frame(message: ChatMessage) -> dict:
    return {"type": FrameType.MESSAGE.value, **message.to_frame()}


def note_frame(note: SharedNote) -> dict:
    return {
        "type": FrameType.NOTE_UPDATE.value,
        "groupId": note.room_id,
        "content": note.content,
    }


def error_frame(message: str) -> dict:
    return {"type": FrameType.ERROR.value, "message": message}


class MessageCreate(BaseModel):
    """Request body for posting a chat message over HTTP."""
    content: str = Field(..., description="Message content")


class NoteUpdate(BaseModel):
    """Request body for replacing a group's shared note over HTTP."""
    content: str = Field(..., description="Full note body (last write wins)")
