"""MessageStore: append-only chat history in DuckDB.

Messages are never updated or deleted. Each insert is assigned a UUID, a
server timestamp and a monotonically increasing sequence number; history is
read back ordered by (timestamp, seq) so ties keep insertion order.

Database Schema:
    messages table:
        - seq: insertion sequence (tie-breaker)
        - id: public message ID
        - group_id, sender_id, sender_name, content
        - timestamp: persist time (naive UTC)
"""
import asyncio
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import List

from genielearn.database import Database
from genielearn.errors import PersistenceFailure

from .schemas import ChatMessage

logger = logging.getLogger(__name__)

# Default page size for message history pagination
DEFAULT_PAGE_SIZE = 100

# Maximum page size to prevent abuse
MAX_PAGE_SIZE = 100


class MessageStore:
    """Persistent, ordered message history keyed by group."""

    def __init__(self, db: Database) -> None:
        self._db = db
        # Held across timestamp assignment, insert and result hand-off, so
        # (timestamp, seq) order and the order inserts resume in agree.
        self._write_lock = threading.Lock()
        self._db.execute("CREATE SEQUENCE IF NOT EXISTS messages_seq START 1")
        self._db.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                seq         BIGINT DEFAULT nextval('messages_seq') PRIMARY KEY,
                id          VARCHAR NOT NULL UNIQUE,
                group_id    VARCHAR NOT NULL,
                sender_id   VARCHAR NOT NULL,
                sender_name VARCHAR NOT NULL,
                content     VARCHAR NOT NULL,
                timestamp   TIMESTAMP NOT NULL
            )
        """)
        self._db.execute(
            "CREATE INDEX IF NOT EXISTS idx_messages_group ON messages(group_id, timestamp)"
        )

    def insert_sync(
        self,
        group_id: str,
        sender_id: str,
        sender_name: str,
        content: str,
    ) -> ChatMessage:
        """Persist one message and return it with its assigned id/timestamp.

        Raises:
            PersistenceFailure: If the database rejects the write.
        """
        with self._write_lock:
            return self._insert_locked(group_id, sender_id, sender_name, content)

    def _insert_locked(
        self,
        group_id: str,
        sender_id: str,
        sender_name: str,
        content: str,
    ) -> ChatMessage:
        message_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        try:
            self._db.execute(
                """
                INSERT INTO messages (id, group_id, sender_id, sender_name, content, timestamp)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [message_id, group_id, sender_id, sender_name, content, now.replace(tzinfo=None)],
            )
        except Exception as e:
            logger.error(f"[MessageStore] Insert failed for group {group_id}: {e!r}")
            raise PersistenceFailure()
        return ChatMessage(
            id=message_id,
            group_id=group_id,
            sender_id=sender_id,
            sender_name=sender_name,
            content=content,
            timestamp=now,
        )

    async def insert(
        self,
        group_id: str,
        sender_id: str,
        sender_name: str,
        content: str,
    ) -> ChatMessage:
        """Persist in a worker thread without blocking the event loop.

        Awaiting callers resume in the order their rows were committed.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def _resolve(result=None, error=None):
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(result)

        def _run() -> None:
            with self._write_lock:
                try:
                    message = self._insert_locked(group_id, sender_id, sender_name, content)
                except Exception as e:
                    loop.call_soon_threadsafe(_resolve, None, e)
                else:
                    loop.call_soon_threadsafe(_resolve, message)

        loop.run_in_executor(None, _run)
        return await future

    def list_sync(
        self,
        group_id: str,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> List[ChatMessage]:
        """Get one page of a group's history, oldest first."""
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = max(0, offset)
        rows = self._db.fetchall(
            """
            SELECT id, group_id, sender_id, sender_name, content, timestamp
            FROM messages
            WHERE group_id = ?
            ORDER BY timestamp ASC, seq ASC
            LIMIT ? OFFSET ?
            """,
            [group_id, limit, offset],
        )
        return [
            ChatMessage(
                id=r[0],
                group_id=r[1],
                sender_id=r[2],
                sender_name=r[3],
                content=r[4],
                timestamp=r[5].replace(tzinfo=timezone.utc),
            )
            for r in rows
        ]

    async def list(
        self,
        group_id: str,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> List[ChatMessage]:
        return await asyncio.to_thread(self.list_sync, group_id, limit, offset)

    def count(self, group_id: str) -> int:
        row = self._db.fetchone(
            "SELECT count(*) FROM messages WHERE group_id = ?", [group_id]
        )
        return row[0] if row else 0
