"""FastAPI dependencies for bearer-authenticated HTTP endpoints."""
from typing import Optional

from fastapi import Header, HTTPException
from starlette.concurrency import run_in_threadpool

from studysync.errors import AuthenticationError

from .schemas import Identity
from .service import get_verifier


async def get_current_identity(
    authorization: Optional[str] = Header(None),
) -> Identity:
    """Resolve ``Authorization: Bearer <token>`` into an Identity.

    Raises:
        HTTPException: 401 when the header is missing, malformed or invalid.
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="Access denied. No token provided.")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Access denied. Malformed token.")

    try:
        return await run_in_threadpool(get_verifier().verify, token.strip())
    except AuthenticationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e
