"""Chat gateway: authenticated, group-scoped real-time delivery.

The gateway turns a raw bidirectional connection into a chat participant
and makes sure every persisted message reaches every live participant of its
group once (best effort, no redelivery).

Connection lifecycle (see ConnectionState):
    1. admit(): AUTHENTICATING via the session validator, then AUTHORIZING
       against the group's member set. Failures raise Unauthenticated,
       GroupNotFound or Forbidden and leave the registry untouched.
    2. open(): register in the ConnectionRegistry, state OPEN, and tell the
       *other* members that the user joined.
    3. handle_event(): validate → persist → broadcast to the whole group,
       sender included. Validation and persistence errors go back to the
       sender only and never close the connection.
    4. close(): deregister and tell the remaining members that the user left.

Policies:
    - Join/leave notices are ephemeral system events; they are never
      persisted as messages.
    - Membership is checked once, at connect time.

Delivery Notes:
    - Persistence runs in a worker thread, so other connections keep being
      served while one insert is in flight.
    - Fan-out for a group is serialized with a per-group asyncio.Lock held
      only around the broadcast. Messages persisted A then B therefore reach
      every receiver A then B, and a slow insert never holds the lock.
    - Sends are concurrent (asyncio.gather); a failing or stalled transport
      is dropped from the registry and closed with 1011 without affecting
      the others.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from genielearn.auth.service import Identity, SessionValidator
from genielearn.errors import Forbidden, GenieLearnError, GroupNotFound, Unauthenticated
from genielearn.groups.schemas import Group
from genielearn.groups.service import GroupService

from .registry import Connection, ConnectionRegistry, ConnectionState, Transport
from .schemas import (
    ChatMessage,
    ErrorEvent,
    MessageEvent,
    SystemEvent,
    SystemKind,
    dump_event,
    parse_inbound,
    validate_content,
)
from .store import MessageStore

logger = logging.getLogger(__name__)


class ChatGateway:
    """Owns the connection registry and all fan-out for group chat."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        sessions: SessionValidator,
        groups: GroupService,
        messages: MessageStore,
        send_timeout: float = 5.0,
    ) -> None:
        self.registry = registry
        self.sessions = sessions
        self.groups = groups
        self.messages = messages
        self.send_timeout = send_timeout
        # group_id -> lock serializing broadcasts for that group
        self._fanout_locks: Dict[str, asyncio.Lock] = {}

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def authorize(self, user_id: str, group_id: str) -> Group:
        """Confirm the group exists and the user belongs to it.

        Raises:
            GroupNotFound: If there is no such group.
            Forbidden: If the user is not a member.
        """
        group = await self.groups.get_group(group_id)
        if group is None:
            raise GroupNotFound()
        if not await self.groups.is_member(group_id, user_id):
            raise Forbidden()
        return group

    async def admit(
        self,
        transport: Transport,
        group_id: str,
        credential: Optional[str],
    ) -> Connection:
        """Authenticate and authorize a new connection.

        Returns:
            A Connection in state AUTHORIZING, ready for open().

        Raises:
            Unauthenticated, GroupNotFound, Forbidden: The connection must be
                closed with ``exc.close_code`` / ``exc.code``.
        """
        connection = Connection(transport=transport, group_id=group_id)
        connection.state = ConnectionState.AUTHENTICATING
        try:
            identity = await self.sessions.verify(credential)
            connection.user_id = identity.user_id
            connection.display_name = identity.display_name

            connection.state = ConnectionState.AUTHORIZING
            await self.authorize(identity.user_id, group_id)
        except (Unauthenticated, GroupNotFound, Forbidden) as exc:
            connection.state = ConnectionState.CLOSED
            logger.info(
                f"[Gateway] Refused connection to group {group_id} "
                f"(user={connection.user_id or '?'}): {exc.code}"
            )
            raise
        return connection

    async def open(self, connection: Connection) -> None:
        """Register an admitted connection and announce the join to others."""
        self.registry.register(connection)
        connection.state = ConnectionState.OPEN
        logger.info(
            f"[Gateway] {connection.display_name} ({connection.user_id}) joined group "
            f"{connection.group_id}; {self.registry.group_size(connection.group_id)} connected"
        )
        await self.announce(
            connection.group_id,
            f"{connection.display_name} joined the chat",
            kind=SystemKind.JOINED,
            exclude=connection,
        )

    async def close(self, connection: Connection) -> None:
        """Deregister a connection and announce the departure. Idempotent."""
        if connection.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return
        was_open = connection.state is ConnectionState.OPEN
        connection.state = ConnectionState.CLOSING
        self.registry.unregister(connection)
        if was_open:
            logger.info(
                f"[Gateway] {connection.display_name} ({connection.user_id}) left group "
                f"{connection.group_id}"
            )
            await self.announce(
                connection.group_id,
                f"{connection.display_name} left the chat",
                kind=SystemKind.LEFT,
            )
        connection.state = ConnectionState.CLOSED

    async def release(self, connection: Connection) -> None:
        """close() for socket teardown; completes even if the caller is cancelled."""
        await asyncio.shield(self.close(connection))

    # =========================================================================
    # Messaging
    # =========================================================================

    async def handle_event(self, connection: Connection, payload: Any) -> Optional[ChatMessage]:
        """Process one inbound frame from an open connection.

        Returns:
            The persisted message, or None if the frame was rejected.
        """
        if connection.state is not ConnectionState.OPEN:
            logger.debug(f"[Gateway] Ignoring event on {connection.state.value} connection")
            return None
        try:
            event = parse_inbound(payload)
            message = await self.messages.insert(
                group_id=connection.group_id,
                sender_id=connection.user_id,
                sender_name=connection.display_name,
                content=event.content,
            )
        except GenieLearnError as exc:
            logger.info(f"[Gateway] Rejected event from {connection.user_id}: {exc.code}")
            await self._safe_send(connection, dump_event(ErrorEvent(error=exc.message, code=exc.code)))
            return None

        await self.broadcast(connection.group_id, dump_event(MessageEvent.from_message(message)))
        return message

    async def post_message(self, identity: Identity, group_id: str, content: Any) -> ChatMessage:
        """HTTP fallback send: same checks and fan-out as the socket path.

        Raises:
            GroupNotFound, Forbidden, ValidationFailure, PersistenceFailure
        """
        await self.authorize(identity.user_id, group_id)
        text = validate_content(content)
        message = await self.messages.insert(
            group_id=group_id,
            sender_id=identity.user_id,
            sender_name=identity.display_name,
            content=text,
        )
        await self.broadcast(group_id, dump_event(MessageEvent.from_message(message)))
        return message

    async def announce(
        self,
        group_id: str,
        content: str,
        kind: Optional[SystemKind] = None,
        exclude: Optional[Connection] = None,
    ) -> int:
        """Broadcast an ephemeral system notice. Returns the delivery count."""
        event = SystemEvent(content=content, kind=kind)
        return await self.broadcast(group_id, dump_event(event), exclude=exclude)

    # =========================================================================
    # Fan-out
    # =========================================================================

    async def broadcast(
        self,
        group_id: str,
        event: dict,
        exclude: Optional[Connection] = None,
    ) -> int:
        """Send one event to every connection currently in the group.

        Connections that join after the snapshot is taken do not receive it.

        Returns:
            Number of connections the event was delivered to.
        """
        lock = self._fanout_locks.setdefault(group_id, asyncio.Lock())
        async with lock:
            targets = [
                conn for conn in self.registry.connections(group_id)
                if conn is not exclude
            ]
            if not targets:
                results = []
            else:
                results = await asyncio.gather(
                    *[self._safe_send(conn, event) for conn in targets]
                )

        failed = [conn for conn, ok in zip(targets, results) if not ok]
        for conn in failed:
            await self._drop(conn)

        if self.registry.group_size(group_id) == 0 and not lock.locked():
            self._fanout_locks.pop(group_id, None)

        return len(targets) - len(failed)

    async def _safe_send(self, connection: Connection, event: dict) -> bool:
        """Send to one connection; never raises.

        Returns:
            True if successful, False if the transport failed or timed out.
        """
        try:
            await asyncio.wait_for(
                connection.transport.send_json(event), timeout=self.send_timeout
            )
            return True
        except Exception as e:
            logger.debug(f"[Gateway] Failed to send to {connection.connection_id}: {e!r}")
            return False

    async def _drop(self, connection: Connection) -> None:
        """Take a connection whose send failed or stalled out of the group.

        The transport is closed so the peer sees the disconnect and can
        reconnect or fall back to polling; the others get a leave notice.
        """
        registered = self.registry.unregister(connection)
        if not registered or connection.state is not ConnectionState.OPEN:
            return
        logger.info(
            f"[Gateway] Dropping unresponsive connection {connection.connection_id} "
            f"({connection.user_id}) from {connection.group_id}"
        )
        try:
            await asyncio.wait_for(
                connection.transport.close(code=1011), timeout=self.send_timeout
            )
        except Exception as e:
            logger.debug(f"[Gateway] Failed to close {connection.connection_id}: {e!r}")
        await self.close(connection)
