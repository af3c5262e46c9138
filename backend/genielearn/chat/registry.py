"""Connection registry for group chat fan-out.

Maps each group ID to the ordered list of live connections currently
subscribed to it.

Invariants:
    - A connection is registered under at most one group at a time.
    - A group entry is removed as soon as its last connection leaves.

Thread Safety:
    The registry is owned by the chat gateway and mutated only from the
    event loop, so register/unregister/snapshot never interleave. It is NOT
    safe to share across threads.
"""
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Anything that can push a JSON frame to one client (e.g. a WebSocket)."""

    async def send_json(self, data: Any) -> None:
        ...

    async def close(self, code: int = 1000) -> None:
        ...


class ConnectionState(str, Enum):
    """Lifecycle of a chat connection.

    CONNECTING → AUTHENTICATING → AUTHORIZING → OPEN → CLOSING → CLOSED.
    Authentication or authorization failure goes straight to CLOSED.
    """
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    AUTHORIZING = "authorizing"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass(eq=False)
class Connection:
    """One live socket bound to a (group, user, display name) triple."""
    transport: Transport
    group_id: str
    user_id: str = ""
    display_name: str = ""
    connection_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: ConnectionState = ConnectionState.CONNECTING


class RegistryError(RuntimeError):
    """A registration would break the one-socket-one-group invariant."""


class ConnectionRegistry:
    """In-memory group → connections mapping.

    Created per application and injected into the gateway; ``clear()``
    resets it between tests.
    """

    def __init__(self) -> None:
        # group_id -> connections in registration order
        self._groups: Dict[str, List[Connection]] = {}
        # connection_id -> group_id
        self._membership: Dict[str, str] = {}

    def register(self, connection: Connection) -> None:
        current = self._membership.get(connection.connection_id)
        if current is not None:
            raise RegistryError(
                f"Connection {connection.connection_id} already registered in group {current}"
            )
        self._groups.setdefault(connection.group_id, []).append(connection)
        self._membership[connection.connection_id] = connection.group_id
        logger.debug(
            f"[Registry] +{connection.connection_id} group={connection.group_id} "
            f"size={len(self._groups[connection.group_id])}"
        )

    def unregister(self, connection: Connection) -> bool:
        """Remove a connection. Returns False if it was not registered."""
        group_id = self._membership.pop(connection.connection_id, None)
        if group_id is None:
            return False
        members = self._groups.get(group_id, [])
        if connection in members:
            members.remove(connection)
        if not members:
            self._groups.pop(group_id, None)
        logger.debug(f"[Registry] -{connection.connection_id} group={group_id}")
        return True

    def connections(self, group_id: str) -> List[Connection]:
        """Snapshot of a group's connections (safe to iterate while awaiting)."""
        return list(self._groups.get(group_id, []))

    def group_of(self, connection: Connection) -> Optional[str]:
        return self._membership.get(connection.connection_id)

    def is_registered(self, connection: Connection) -> bool:
        return connection.connection_id in self._membership

    def group_size(self, group_id: str) -> int:
        return len(self._groups.get(group_id, []))

    def groups(self) -> List[str]:
        return list(self._groups)

    def clear(self) -> None:
        self._groups.clear()
        self._membership.clear()
