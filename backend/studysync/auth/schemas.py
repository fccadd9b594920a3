"""Pydantic schemas for verified identities."""
from pydantic import BaseModel, ConfigDict, Field


class Identity(BaseModel):
    """The verified (user id, display name) pair bound to a session.

    Produced once at handshake and never mutated for the connection's
    lifetime.
    """
    model_config = ConfigDict(frozen=True)

    user_id: int = Field(..., description="Verified user id")
    display_name: str = Field(..., description="Display name shown to the room")
