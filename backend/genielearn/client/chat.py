"""Async group chat client.

``GroupChatClient`` holds one group's conversation: it loads history over
HTTP, keeps one live WebSocket open for push events, sends messages
optimistically, and reconciles everything into a single ordered list.

Startup:
    1. Load history page by page (capped at 5000 messages).
    2. Ask GET /auth/status whether the session is server-verified; skip the
       live channel entirely if not.
    3. Open the live channel. If that fails, poll history every few seconds
       instead and expose reconnect().

Sending:
    The optimistic entry is added and the draft cleared before any I/O. On
    failure the entry is removed, the draft restored and ``error`` set. On
    success the HTTP response confirms the entry; the push event for the same
    message then reconciles as a duplicate (or the other way round).

Usage:
    client = GroupChatClient("http://localhost:8000", group_id, "u1", "Ada", token)
    await client.start()
    await client.send("hello")
    for label, day in client.grouped():
        ...
    await client.stop()
"""
import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, List, Optional, Tuple
from urllib.parse import quote, urlencode

import httpx
import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, WebSocketException

from genielearn.chat.schemas import (
    ChatMessage,
    ErrorEvent,
    MessageEvent,
    SystemEvent,
    parse_outbound,
)
from genielearn.config import ClientSettings

from .errors import ChatClientError, message_for_close_reason, raise_for_api_error
from .history import HistoryLoader
from .reconcile import ApplyResult, MessageList, group_by_date

logger = logging.getLogger(__name__)

DEGRADED_NOTICE = "Live updates are unavailable. Refreshing every few seconds."

# Opens a live socket for a URL; defaults to websockets.connect
Connector = Callable[[str], Awaitable[Any]]

_CONNECT_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)


class GroupChatClient:
    """Chat state and transports for one group."""

    def __init__(
        self,
        base_url: str,
        group_id: str,
        user_id: str,
        display_name: str,
        token: str,
        http: Optional[httpx.AsyncClient] = None,
        connect: Optional[Connector] = None,
        settings: Optional[ClientSettings] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.group_id = group_id
        self.user_id = user_id
        self.display_name = display_name
        self.settings = settings or ClientSettings()

        self._token = token
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {token}"},
        )
        self._connect: Connector = connect or websockets.connect

        self.messages = MessageList(window_seconds=self.settings.reconcile_window_seconds)
        self.history = HistoryLoader(
            self._http,
            batch_size=self.settings.batch_size,
            cap=self.settings.history_cap,
        )

        self.draft = ""
        self.connected = False
        self.loading = False
        self.error: Optional[str] = None

        self._socket: Any = None
        self._listener: Optional[asyncio.Task] = None
        self._poller: Optional[asyncio.Task] = None
        self._stopped = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def socket_url(self) -> str:
        if self.base_url.startswith("https://"):
            ws_base = "wss://" + self.base_url[len("https://"):]
        elif self.base_url.startswith("http://"):
            ws_base = "ws://" + self.base_url[len("http://"):]
        else:
            ws_base = self.base_url
        query = urlencode({"token": self._token})
        return f"{ws_base}/ws/groups/{quote(self.group_id, safe='')}?{query}"

    async def start(self) -> None:
        self._stopped = False
        await self.load_history()
        if not await self.has_session():
            logger.info("[Client] No server session, skipping realtime connection")
            self.connected = False
            return
        await self._open_live()

    async def stop(self) -> None:
        self._stopped = True
        self._stop_polling()
        await self._close_live()
        if self._owns_http:
            await self._http.aclose()

    async def reconnect(self, reload_history: bool = True) -> bool:
        """Tear down the live channel and open a fresh one.

        Missed messages are not replayed by the server; ``reload_history``
        merges a fresh history load to patch the gap.
        """
        self._stop_polling()
        await self._close_live()
        self.connected = False
        await asyncio.sleep(self.settings.reconnect_delay_seconds)
        opened = await self._open_live()
        if reload_history:
            await self.load_history(merge=True)
        return opened

    async def has_session(self) -> bool:
        try:
            response = await self._http.get("/auth/status")
        except httpx.HTTPError as e:
            logger.warning(f"[Client] Session check failed: {e}")
            return False
        if not response.is_success:
            return False
        return bool(response.json().get("has_session"))

    async def load_history(self, merge: bool = False) -> bool:
        """Load history into the list. Returns False if the load failed."""
        self.loading = True
        try:
            history = await self.history.load(self.group_id)
        except (ChatClientError, httpx.HTTPError) as e:
            logger.warning(f"[Client] Error loading message history: {e}")
            self.error = e.message if isinstance(e, ChatClientError) else "Could not load messages."
            return False
        finally:
            self.loading = False

        if merge:
            self.messages.merge(history)
        else:
            self.messages.load(history)
        return True

    # =========================================================================
    # Sending
    # =========================================================================

    async def send(self, text: Optional[str] = None) -> Optional[ChatMessage]:
        """Send the given text (or the current draft) optimistically.

        Returns:
            The persisted message, or None if nothing was sent.
        """
        original = self.draft if text is None else text
        content = original.strip()
        if not content:
            return None

        optimistic = self.messages.add_optimistic(
            sender_id=self.user_id,
            sender_name=self.display_name,
            group_id=self.group_id,
            content=content,
        )
        self.draft = ""
        self.error = None

        try:
            response = await self._http.post(
                "/messages/create",
                json={"content": content, "group_id": self.group_id},
            )
            raise_for_api_error(response)
            confirmed = ChatMessage.model_validate(response.json())
        except (ChatClientError, httpx.HTTPError, ValidationError) as e:
            logger.warning(f"[Client] Error sending message: {e}")
            self.messages.discard(optimistic.id)
            self.draft = original
            self.error = (
                e.message if isinstance(e, ChatClientError)
                else "Failed to send message. Please try again."
            )
            return None

        self.messages.confirm(optimistic.id, confirmed)
        return confirmed

    # =========================================================================
    # Push handling
    # =========================================================================

    def handle_frame(self, raw: Any) -> Optional[ApplyResult]:
        """Apply one server frame (JSON text or decoded dict)."""
        try:
            payload = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
            event = parse_outbound(payload)
        except ValueError as e:
            logger.warning(f"[Client] Ignoring unrecognized frame: {e}")
            return None

        if isinstance(event, MessageEvent):
            if event.group_id != self.group_id:
                return None
            return self.messages.apply(event.to_message())
        if isinstance(event, SystemEvent):
            self.messages.add_system(self.group_id, event)
            return ApplyResult.INSERTED
        if isinstance(event, ErrorEvent):
            self.error = event.error
        return None

    def grouped(self) -> List[Tuple[str, List[ChatMessage]]]:
        return group_by_date(self.messages.messages)

    # =========================================================================
    # Internal
    # =========================================================================

    async def _open_live(self) -> bool:
        try:
            socket = await self._connect(self.socket_url())
        except _CONNECT_ERRORS as e:
            logger.info(f"[Client] Realtime connection failed: {e}")
            self.connected = False
            self.error = DEGRADED_NOTICE
            self._start_polling()
            return False

        self._socket = socket
        self.connected = True
        if self.error == DEGRADED_NOTICE:
            self.error = None
        self._stop_polling()
        self._listener = asyncio.create_task(self._listen(socket))
        logger.info(f"[Client] Live channel open for group {self.group_id}")
        return True

    async def _listen(self, socket: Any) -> None:
        terminal = False
        try:
            async for raw in socket:
                self.handle_frame(raw)
        except ConnectionClosed as e:
            reason = e.rcvd.reason if e.rcvd is not None else ""
            friendly = message_for_close_reason(reason)
            if friendly:
                # Unauthenticated / forbidden / missing group: do not retry.
                terminal = True
                self.error = friendly
            logger.info(f"[Client] Live channel closed: {e}")
        finally:
            if self._socket is socket:
                self._socket = None
                self.connected = False
                if not terminal and not self._stopped:
                    self.error = DEGRADED_NOTICE
                    self._start_polling()

    async def _close_live(self) -> None:
        socket, self._socket = self._socket, None
        listener, self._listener = self._listener, None
        if listener is not None and not listener.done():
            listener.cancel()
            try:
                await listener
            except asyncio.CancelledError:
                pass
        if socket is not None:
            await socket.close()
        self.connected = False

    def _start_polling(self) -> None:
        if self._poller is None or self._poller.done():
            self._poller = asyncio.create_task(self._poll())

    def _stop_polling(self) -> None:
        if self._poller is not None:
            self._poller.cancel()
            self._poller = None

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.settings.poll_interval_seconds)
            # load_history reports failures through self.error; keep polling.
            await self.load_history(merge=True)
