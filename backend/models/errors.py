"""
Recoverable game errors.

Every error is reported to the originating connection only, as
{"type": "error", "message": ..., "code": ...}. None of them ends a room.
"""


class GameError(Exception):
    code = "GAME_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_message(self) -> dict:
        return {"type": "error", "message": self.message, "code": self.code}


class NotFound(GameError):
    """Room or player missing."""
    code = "NOT_FOUND"


class Unauthorized(GameError):
    """Non-host invoking a host-only command."""
    code = "UNAUTHORIZED"


class PreconditionFailed(GameError):
    """Insufficient players, or the room is in the wrong state."""
    code = "PRECONDITION_FAILED"


class InvalidActor(GameError):
    """Unknown or eliminated player attempting to vote or guess."""
    code = "INVALID_ACTOR"
