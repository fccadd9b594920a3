"""Membership oracle: the single place room authorization is decided.

Every inbound frame handler and every HTTP route asks the same question
through ``authorize``. Membership is never cached: the answer comes from
storage on every call, so a member removed mid-session is refused on their
next send.
"""
import logging
from typing import Callable, Optional

from studysync.auth.schemas import Identity
from studysync.config import get_config
from studysync.errors import AuthorizationError
from studysync.store import StudyStore

logger = logging.getLogger(__name__)

MembershipCheck = Callable[[int, int], bool]


class MembershipOracle:
    """Answers whether a user belongs to a group.

    Args:
        check: Callable taking (group_id, user_id) and returning membership.
            Storage errors propagate as PersistenceError.
    """

    def __init__(self, check: MembershipCheck) -> None:
        self._check = check

    def authorize(self, identity: Identity, room_id: int) -> bool:
        """Return True when ``identity`` is a member of ``room_id``."""
        allowed = self._check(room_id, identity.user_id)
        if not allowed:
            logger.info(
                "[Membership] User %s is not a member of group %s",
                identity.user_id, room_id,
            )
        return allowed

    def require(self, identity: Identity, room_id: int) -> None:
        """Like ``authorize`` but raises AuthorizationError on refusal."""
        if not self.authorize(identity, room_id):
            raise AuthorizationError(f"Not a member of group {room_id}")


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_oracle: Optional[MembershipOracle] = None


def get_oracle() -> MembershipOracle:
    """Return the global MembershipOracle, backed by the store on first use."""
    global _oracle
    if _oracle is None:
        store = StudyStore.get_instance(get_config().database.path)
        _oracle = MembershipOracle(store.is_member)
    return _oracle


def set_oracle(oracle: Optional[MembershipOracle]) -> None:
    """Set (or replace) the global MembershipOracle instance."""
    global _oracle
    _oracle = oracle
