"""Durable storage for chat messages, shared notes and group membership."""

from .schemas import ChatMessage, SharedNote
from .service import StudyStore

__all__ = [
    "ChatMessage",
    "SharedNote",
    "StudyStore",
]
