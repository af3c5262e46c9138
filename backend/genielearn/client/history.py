"""Paginated history loading for the chat client."""
import logging
from typing import List

import httpx

from genielearn.chat.schemas import ChatMessage

from .errors import ChatClientError, raise_for_api_error

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100

# Hard cap on messages loaded per group
DEFAULT_HISTORY_CAP = 5000


class HistoryLoader:
    """Loads a group's full history in fixed-size pages.

    Pages are requested with increasing ``offset`` until one comes back
    short or ``cap`` messages have been collected, whichever is first.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        batch_size: int = DEFAULT_BATCH_SIZE,
        cap: int = DEFAULT_HISTORY_CAP,
    ) -> None:
        self.http = http
        self.batch_size = batch_size
        self.cap = cap

    async def load(self, group_id: str) -> List[ChatMessage]:
        """Fetch history oldest-first.

        Raises:
            ChatClientError: If any page request fails or is malformed.
        """
        messages: List[ChatMessage] = []
        offset = 0
        while True:
            response = await self.http.get(
                f"/groups/{group_id}/messages",
                params={"limit": self.batch_size, "offset": offset},
            )
            raise_for_api_error(response)
            try:
                batch = [ChatMessage.model_validate(item) for item in response.json()]
            except (ValueError, TypeError) as e:
                logger.warning(f"[Client] Malformed history page for group {group_id}: {e}")
                raise ChatClientError("Could not load messages.", status_code=response.status_code)
            messages.extend(batch)

            if len(batch) < self.batch_size:
                break
            if len(messages) >= self.cap:
                logger.warning(
                    "[Client] Reached maximum message limit (%d) for group %s",
                    self.cap,
                    group_id,
                )
                break
            offset += self.batch_size

        return messages[: self.cap]
