"""Authentication module.

Verifies pre-issued bearer credentials (JWT) for both the websocket
handshake and the HTTP history/note endpoints. Credential issuance lives in
the external account service.

Services:
    - CredentialVerifier: credential -> Identity, or AuthenticationError.
"""

from .schemas import Identity
from .service import CredentialVerifier, get_verifier, set_verifier

__all__ = [
    "CredentialVerifier",
    "Identity",
    "get_verifier",
    "set_verifier",
]
