"""Error taxonomy shared by the HTTP routers and the chat gateway.

Each error knows how it surfaces on both transports:
    - ``status_code``: HTTP status returned by the REST endpoints.
    - ``close_code``: WebSocket close code used when a connection is refused.
    - ``code``: short machine-readable tag, also the WebSocket close reason
      and the ``code`` field of ``error`` events.

The exception message is always a short human-readable sentence that is safe
to show to end users.
"""
from typing import Optional

from fastapi import HTTPException


class GenieLearnError(Exception):
    """Base class for expected, user-facing failures."""

    status_code: int = 500
    close_code: int = 1011
    code: str = "internal"
    default_message: str = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_http(self) -> HTTPException:
        """Translate into the HTTPException raised by routers."""
        return HTTPException(status_code=self.status_code, detail=self.message)


class Unauthenticated(GenieLearnError):
    status_code = 401
    close_code = 4401
    code = "unauthenticated"
    default_message = "You need to log in to continue."


class Forbidden(GenieLearnError):
    status_code = 403
    close_code = 4403
    code = "forbidden"
    default_message = "You are not a member of this group."


class GroupNotFound(GenieLearnError):
    status_code = 404
    close_code = 4404
    code = "not_found"
    default_message = "Group not found."


class ValidationFailure(GenieLearnError):
    status_code = 400
    close_code = 1008
    code = "validation"
    default_message = "Invalid request."


class PersistenceFailure(GenieLearnError):
    status_code = 500
    close_code = 1011
    code = "persistence"
    default_message = "Failed to save message. Please try again."
