"""Bearer credential verification.

Credentials are HS256 JWTs issued by the external account service. The
payload must carry the numeric user ``id``; ``name`` is optional and, when
absent, the display name is looked up in the users table.
"""
import logging
from typing import Callable, Optional

import jwt

from studysync.config import get_config
from studysync.errors import AuthenticationError, PersistenceError
from studysync.store import StudyStore

from .schemas import Identity

logger = logging.getLogger(__name__)

NameLookup = Callable[[int], Optional[str]]


class CredentialVerifier:
    """Validates an opaque bearer credential and returns an Identity.

    Args:
        secret_key: Shared HMAC secret used to sign credentials.
        algorithm: JWT signing algorithm (default HS256).
        name_lookup: Optional callable resolving a user id to a display name.
        default_display_name: Fallback when neither claim nor lookup has a name.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        name_lookup: Optional[NameLookup] = None,
        default_display_name: str = "Unknown",
    ) -> None:
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._name_lookup = name_lookup
        self._default_display_name = default_display_name

    def verify(self, credential: Optional[str]) -> Identity:
        """Verify a credential.

        Raises:
            AuthenticationError: If the credential is missing, fails signature
                or expiry checks, or carries no usable user id.
        """
        if not credential:
            raise AuthenticationError("Missing credential")

        try:
            claims = jwt.decode(credential, self._secret_key, algorithms=[self._algorithm])
        except jwt.PyJWTError as e:
            logger.info(f"[Auth] Rejected credential: {e}")
            raise AuthenticationError("Invalid credential") from e

        user_id = claims.get("id")
        if isinstance(user_id, bool) or not isinstance(user_id, int):
            raise AuthenticationError("Credential has no user id")

        return Identity(user_id=user_id, display_name=self._resolve_name(user_id, claims))

    def _resolve_name(self, user_id: int, claims: dict) -> str:
        name = claims.get("name")
        if isinstance(name, str) and name.strip():
            return name.strip()

        if self._name_lookup is not None:
            try:
                looked_up = self._name_lookup(user_id)
            except PersistenceError as e:
                logger.warning(f"[Auth] Name lookup failed for user {user_id}: {e.message}")
                looked_up = None
            if looked_up:
                return looked_up

        return self._default_display_name


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_verifier: Optional[CredentialVerifier] = None


def get_verifier() -> CredentialVerifier:
    """Return the global CredentialVerifier, building it from config on first use."""
    global _verifier
    if _verifier is None:
        config = get_config()
        store = StudyStore.get_instance(config.database.path)
        _verifier = CredentialVerifier(
            secret_key=config.secrets.jwt.secret_key,
            algorithm=config.auth.algorithm,
            name_lookup=store.get_user_name,
            default_display_name=config.auth.default_display_name,
        )
    return _verifier


def set_verifier(verifier: Optional[CredentialVerifier]) -> None:
    """Set (or replace) the global CredentialVerifier instance."""
    global _verifier
    _verifier = verifier
