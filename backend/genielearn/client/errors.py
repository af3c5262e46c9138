"""Client-side errors with messages fit for end users."""
from typing import Optional

import httpx

_STATUS_MESSAGES = {
    401: "Your session has expired. Please log in again.",
    403: "You are not a member of this group.",
    404: "This group no longer exists.",
}

_CLOSE_MESSAGES = {
    "unauthenticated": _STATUS_MESSAGES[401],
    "forbidden": _STATUS_MESSAGES[403],
    "not_found": _STATUS_MESSAGES[404],
}

GENERIC_MESSAGE = "Failed to send message. Please try again."


class ChatClientError(Exception):
    """A request failed; ``message`` is safe to show to the user."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def _detail(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("error")
        if isinstance(detail, str):
            return detail
    return None


def raise_for_api_error(response: httpx.Response) -> None:
    """Raise ChatClientError for any non-2xx response."""
    if response.is_success:
        return
    status = response.status_code
    if status in _STATUS_MESSAGES:
        message = _STATUS_MESSAGES[status]
    elif status == 400:
        message = _detail(response) or "That message could not be sent."
    else:
        message = GENERIC_MESSAGE
    raise ChatClientError(message, status_code=status)


def message_for_close_reason(reason: str) -> Optional[str]:
    """Friendly text for a server close reason; None if it is not terminal."""
    return _CLOSE_MESSAGES.get(reason)
