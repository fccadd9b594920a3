"""Pydantic schemas for durable records.

These schemas are used by:
    - StudyStore: DuckDB storage layer
    - chat.events: building broadcast frames from persisted records
    - chat.router / notes.router: HTTP history and note endpoints
"""
from datetime import datetime

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """A persisted chat message.

    Created by the store on a validated send and never mutated afterwards.

    Attributes:
        id: Store-assigned sequential id.
        room_id: Group the message was sent to.
        author_id: User id of the sending connection's identity.
        author_name: Display name resolved at send time.
        content: Trimmed message text.
        created_at: Store-assigned timestamp (UTC).
    """
    id: int = Field(..., description="Message id")
    room_id: int = Field(..., description="Group id")
    author_id: int = Field(..., description="Author user id")
    author_name: str = Field(default="", description="Author display name")
    content: str = Field(..., description="Message content")
    created_at: datetime = Field(..., description="When persisted (UTC)")

    def to_frame(self) -> dict:
        """Wire representation shared by the websocket and the history API."""
        return {
            "id": self.id,
            "groupId": self.room_id,
            "userId": self.author_id,
            "userName": self.author_name,
            "content": self.content,
            "createdAt": self.created_at.isoformat(),
        }


class SharedNote(BaseModel):
    """The single shared note of a group (last write wins)."""
    room_id: int = Field(..., description="Group id")
    title: str = Field(default="Shared Notes", description="Note title")
    content: str = Field(default="", description="Note body")
    last_edited_by: int = Field(..., description="User id of the last editor")
    updated_at: datetime = Field(..., description="Last write (UTC)")

    def to_response(self) -> dict:
        return {
            "groupId": self.room_id,
            "title": self.title,
            "content": self.content,
            "lastEditedBy": self.last_edited_by,
            "updatedAt": self.updated_at.isoformat(),
        }
