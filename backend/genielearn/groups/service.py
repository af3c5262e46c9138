"""GroupService: DuckDB-backed study groups and membership.

This is the Group Membership Store the chat gateway consults when a socket
connects or a message is posted over HTTP.
"""
import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from genielearn.database import Database

from .schemas import Group, GroupMember

logger = logging.getLogger(__name__)

_CREATE_GROUPS = """
CREATE TABLE IF NOT EXISTS groups (
    id          VARCHAR PRIMARY KEY,
    name        VARCHAR NOT NULL,
    description VARCHAR NOT NULL DEFAULT '',
    created_by  VARCHAR NOT NULL,
    created_at  TIMESTAMP NOT NULL
)
"""

_CREATE_MEMBERS = """
CREATE TABLE IF NOT EXISTS group_members (
    group_id     VARCHAR NOT NULL,
    user_id      VARCHAR NOT NULL,
    display_name VARCHAR NOT NULL,
    joined_at    TIMESTAMP NOT NULL,
    PRIMARY KEY (group_id, user_id)
)
"""

_GROUP_SELECT = """
SELECT g.id, g.name, g.description, g.created_by, g.created_at,
       (SELECT count(*) FROM group_members m WHERE m.group_id = g.id)
FROM groups g
"""


def _utc(value: datetime) -> datetime:
    # Timestamps are stored as naive UTC.
    return value.replace(tzinfo=timezone.utc)


class GroupService:
    """Groups and member sets.

    Writes are synchronous; the async accessors used on the chat hot path
    run the query in a worker thread.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._db.execute(_CREATE_GROUPS)
        self._db.execute(_CREATE_MEMBERS)

    # -----------------------------------------------------------------------
    # Groups
    # -----------------------------------------------------------------------

    def create(
        self,
        name: str,
        created_by: str,
        creator_name: str,
        description: str = "",
    ) -> Group:
        group_id = str(uuid.uuid4())
        now = datetime.utcnow()
        self._db.execute(
            "INSERT INTO groups VALUES (?, ?, ?, ?, ?)",
            [group_id, name.strip(), description, created_by, now],
        )
        self._db.execute(
            "INSERT INTO group_members VALUES (?, ?, ?, ?)",
            [group_id, created_by, creator_name, now],
        )
        logger.info("[Groups] %s created group %s (%s)", created_by, group_id, name)
        return self.get(group_id)

    def get(self, group_id: str) -> Optional[Group]:
        row = self._db.fetchone(_GROUP_SELECT + " WHERE g.id = ?", [group_id])
        if row is None:
            return None
        return Group(
            id=row[0],
            name=row[1],
            description=row[2],
            created_by=row[3],
            created_at=_utc(row[4]),
            member_count=row[5],
        )

    def list_for_user(self, user_id: str) -> List[Group]:
        rows = self._db.fetchall(
            _GROUP_SELECT
            + " WHERE g.id IN (SELECT group_id FROM group_members WHERE user_id = ?)"
            + " ORDER BY g.created_at ASC",
            [user_id],
        )
        return [
            Group(
                id=r[0], name=r[1], description=r[2], created_by=r[3],
                created_at=_utc(r[4]), member_count=r[5],
            )
            for r in rows
        ]

    # -----------------------------------------------------------------------
    # Membership
    # -----------------------------------------------------------------------

    def add_member(self, group_id: str, user_id: str, display_name: str) -> bool:
        """Add a member. Returns False if they already belonged to the group."""
        if self.is_member_sync(group_id, user_id):
            return False
        self._db.execute(
            "INSERT INTO group_members VALUES (?, ?, ?, ?)",
            [group_id, user_id, display_name, datetime.utcnow()],
        )
        logger.info("[Groups] %s joined group %s", user_id, group_id)
        return True

    def remove_member(self, group_id: str, user_id: str) -> bool:
        row = self._db.fetchone(
            "DELETE FROM group_members WHERE group_id = ? AND user_id = ? RETURNING user_id",
            [group_id, user_id],
        )
        if row is not None:
            logger.info("[Groups] %s left group %s", user_id, group_id)
        return row is not None

    def members(self, group_id: str) -> List[GroupMember]:
        rows = self._db.fetchall(
            "SELECT user_id, display_name, joined_at FROM group_members"
            " WHERE group_id = ? ORDER BY joined_at ASC",
            [group_id],
        )
        return [
            GroupMember(user_id=r[0], display_name=r[1], joined_at=_utc(r[2]))
            for r in rows
        ]

    def is_member_sync(self, group_id: str, user_id: str) -> bool:
        row = self._db.fetchone(
            "SELECT 1 FROM group_members WHERE group_id = ? AND user_id = ?",
            [group_id, user_id],
        )
        return row is not None

    # -----------------------------------------------------------------------
    # Async accessors for the chat gateway
    # -----------------------------------------------------------------------

    async def get_group(self, group_id: str) -> Optional[Group]:
        return await asyncio.to_thread(self.get, group_id)

    async def is_member(self, group_id: str, user_id: str) -> bool:
        return await asyncio.to_thread(self.is_member_sync, group_id, user_id)
