"""Group membership checks shared by the websocket and HTTP layers."""

from .service import MembershipOracle, get_oracle, set_oracle

__all__ = ["MembershipOracle", "get_oracle", "set_oracle"]
