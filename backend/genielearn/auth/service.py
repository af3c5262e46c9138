"""Session validation backed by DuckDB.

Sessions are opaque bearer tokens handed out by whatever identity provider
fronts GenieLearn. The store only keeps a peppered SHA-256 hash of each token
together with the user it belongs to and an expiry, and answers one question
for the rest of the application: which user does this credential belong to?

Usage:
    store = SessionStore(db, pepper="...")
    token = store.issue("user-1", "Ada Lovelace")
    identity = await store.verify(token)
"""
import asyncio
import hashlib
import logging
import secrets
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, Field

from genielearn.database import Database
from genielearn.errors import Unauthenticated

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS sessions (
    token_hash   VARCHAR PRIMARY KEY,
    user_id      VARCHAR NOT NULL,
    display_name VARCHAR NOT NULL,
    created_at   TIMESTAMP NOT NULL,
    expires_at   TIMESTAMP NOT NULL
)
"""


class Identity(BaseModel):
    """The user a verified credential resolves to."""
    user_id: str = Field(..., description="Stable user ID")
    display_name: str = Field(..., description="Name shown to other members")


class SessionValidator(ABC):
    """Resolves an opaque credential to an Identity."""

    @abstractmethod
    async def verify(self, credential: Optional[str]) -> Identity:
        """Return the identity behind ``credential``.

        Raises:
            Unauthenticated: If the credential is missing, unknown or expired.
        """


class SessionStore(SessionValidator):
    """DuckDB-backed session tokens with expiry."""

    def __init__(
        self,
        db: Database,
        pepper: str = "",
        ttl_minutes: int = 60 * 24 * 7,
    ) -> None:
        self._db = db
        self._pepper = pepper
        self._ttl = timedelta(minutes=ttl_minutes)
        self._db.execute(_CREATE_TABLE)

    def _hash(self, token: str) -> str:
        return hashlib.sha256(f"{self._pepper}:{token}".encode("utf-8")).hexdigest()

    def issue(
        self,
        user_id: str,
        display_name: str,
        ttl_minutes: Optional[int] = None,
    ) -> str:
        """Create a session for a user and return the raw token."""
        token = secrets.token_urlsafe(32)
        now = datetime.utcnow()
        ttl = timedelta(minutes=ttl_minutes) if ttl_minutes is not None else self._ttl
        self._db.execute(
            "INSERT INTO sessions VALUES (?, ?, ?, ?, ?)",
            [self._hash(token), user_id, display_name, now, now + ttl],
        )
        logger.info("[Sessions] Issued session for user %s", user_id)
        return token

    def lookup(self, credential: Optional[str]) -> Identity:
        """Synchronous verification, used from worker threads."""
        if not credential:
            raise Unauthenticated("No session credential provided.")
        row = self._db.fetchone(
            "SELECT user_id, display_name, expires_at FROM sessions WHERE token_hash = ?",
            [self._hash(credential)],
        )
        if row is None:
            raise Unauthenticated("Your session is invalid. Please log in again.")
        user_id, display_name, expires_at = row
        if expires_at <= datetime.utcnow():
            raise Unauthenticated("Your session has expired. Please log in again.")
        return Identity(user_id=user_id, display_name=display_name)

    async def verify(self, credential: Optional[str]) -> Identity:
        return await asyncio.to_thread(self.lookup, credential)

    def revoke(self, credential: str) -> bool:
        row = self._db.fetchone(
            "DELETE FROM sessions WHERE token_hash = ? RETURNING user_id",
            [self._hash(credential)],
        )
        if row is not None:
            logger.info("[Sessions] Revoked session for user %s", row[0])
        return row is not None

    def purge_expired(self) -> int:
        rows = self._db.fetchall(
            "DELETE FROM sessions WHERE expires_at <= ? RETURNING token_hash",
            [datetime.utcnow()],
        )
        return len(rows)
