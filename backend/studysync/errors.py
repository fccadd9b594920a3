"""Error taxonomy shared by the realtime core and the HTTP routers.

Every failure carries a human-readable ``message`` (sent back to the client
in an error frame or HTTP detail) and the HTTP ``status_code`` it maps to.

    AuthenticationError   bad or missing credential; fatal to a websocket
    AuthorizationError    authenticated but not a member of the room
    FrameValidationError  empty content, bad field, malformed frame
    PersistenceError      durable store call failed; broadcast suppressed
    DeliveryError         one broadcast target failed; logged only
"""


class StudySyncError(Exception):
    """Base exception for StudySync errors."""
    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class AuthenticationError(StudySyncError):
    """Raised when a credential is missing, malformed or fails verification."""
    def __init__(self, message: str = "Invalid or missing credential"):
        super().__init__(message, status_code=401)


class AuthorizationError(StudySyncError):
    """Raised when a user acts on a group they do not belong to."""
    def __init__(self, message: str = "Not a member of this group"):
        super().__init__(message, status_code=403)


class FrameValidationError(StudySyncError):
    """Raised when an inbound frame or request body fails validation."""
    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class PersistenceError(StudySyncError):
    """Raised when the durable store rejects or fails a write/read."""
    def __init__(self, message: str = "Failed to persist event"):
        super().__init__(message, status_code=500)


class DeliveryError(StudySyncError):
    """Raised when sending a frame to one live connection fails."""
    def __init__(self, message: str = "Failed to deliver frame"):
        super().__init__(message, status_code=500)
