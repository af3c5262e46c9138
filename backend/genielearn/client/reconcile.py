"""Reconciliation of optimistic and server-confirmed chat messages.

A chat client sees the same logical message through up to three sources:
the history page it loaded on start, the optimistic copy it fabricated when
the user hit send, and the push event the server broadcasts after persisting
(the sender receives its own broadcast). ``MessageList`` merges them into one
time-ordered list without duplicates.

Reconciliation rule for a pushed message M:
    1. A confirmed entry with M.id exists → ignore.
    2. An optimistic entry with the same sender and content, stamped within
       the reconcile window of M → replace it with M in place.
    3. Otherwise insert M after every entry whose timestamp is <= M's.

The optimistic match is a heuristic: the wire carries no client-generated
idempotency key, so two identical messages from one sender inside the window
can pair with each other's confirmations. Both still end up confirmed exactly
once each.
"""
import bisect
import uuid
from collections import OrderedDict
from datetime import date, datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import Iterable, Iterator, List, Literal, Optional, Set, Tuple

from genielearn.chat.schemas import ChatMessage, SystemEvent

# Default window for pairing a confirmation with its optimistic copy
DEFAULT_RECONCILE_WINDOW_SECONDS = 10.0


class OptimisticMessage(ChatMessage):
    """Locally fabricated message awaiting server confirmation."""
    is_optimistic: Literal[True] = True


class ApplyResult(str, Enum):
    DUPLICATE = "duplicate"
    CONFIRMED = "confirmed"
    INSERTED = "inserted"


def _timestamp(message: ChatMessage) -> datetime:
    return message.timestamp


class MessageList:
    """Single-owner, time-ordered message list for one group."""

    def __init__(self, window_seconds: float = DEFAULT_RECONCILE_WINDOW_SECONDS) -> None:
        self.window = timedelta(seconds=window_seconds)
        self._items: List[ChatMessage] = []
        self._confirmed_ids: Set[str] = set()

    # -----------------------------------------------------------------------
    # Views
    # -----------------------------------------------------------------------

    @property
    def messages(self) -> List[ChatMessage]:
        return list(self._items)

    @property
    def pending(self) -> List[OptimisticMessage]:
        return [m for m in self._items if isinstance(m, OptimisticMessage)]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(list(self._items))

    # -----------------------------------------------------------------------
    # Mutations
    # -----------------------------------------------------------------------

    def load(self, history: Iterable[ChatMessage]) -> None:
        """Replace confirmed contents with a history snapshot.

        Pending optimistic entries survive and are reconciled against the
        snapshot like any other confirmation.
        """
        pending = self.pending
        self._items = []
        self._confirmed_ids = set()
        for message in pending:
            self._insert(message)
        self.merge(history)

    def merge(self, history: Iterable[ChatMessage]) -> int:
        """Apply a batch of confirmed messages. Returns how many were new."""
        applied = 0
        for message in history:
            if self.apply(message) is not ApplyResult.DUPLICATE:
                applied += 1
        return applied

    def add_optimistic(
        self,
        sender_id: str,
        sender_name: str,
        group_id: str,
        content: str,
        now: Optional[datetime] = None,
    ) -> OptimisticMessage:
        message = OptimisticMessage(
            id=f"temp-{uuid.uuid4()}",
            group_id=group_id,
            sender_id=sender_id,
            sender_name=sender_name,
            content=content,
            timestamp=now or datetime.now(timezone.utc),
        )
        self._insert(message)
        return message

    def discard(self, temp_id: str) -> bool:
        """Remove an optimistic entry (send failed)."""
        index = self._index_of_optimistic(temp_id)
        if index is None:
            return False
        del self._items[index]
        return True

    def apply(self, message: ChatMessage) -> ApplyResult:
        """Reconcile one confirmed message into the list."""
        if message.id in self._confirmed_ids:
            return ApplyResult.DUPLICATE

        index = self._match_optimistic(message)
        if index is not None:
            self._replace(index, message)
            return ApplyResult.CONFIRMED

        self._insert(message)
        self._confirmed_ids.add(message.id)
        return ApplyResult.INSERTED

    def confirm(self, temp_id: str, message: ChatMessage) -> ApplyResult:
        """Replace a specific optimistic entry with the server's copy.

        Used with the direct HTTP response. Whichever of the response and the
        push event arrives second is a DUPLICATE.
        """
        if message.id in self._confirmed_ids:
            self.discard(temp_id)
            return ApplyResult.DUPLICATE
        index = self._index_of_optimistic(temp_id)
        if index is None:
            return self.apply(message)
        self._replace(index, message)
        return ApplyResult.CONFIRMED

    def add_system(self, group_id: str, event: SystemEvent) -> ChatMessage:
        """Insert an ephemeral join/leave notice."""
        notice = ChatMessage(
            id=f"system-{uuid.uuid4()}",
            group_id=group_id,
            sender_id="system",
            sender_name="",
            content=event.content,
            timestamp=event.timestamp,
            is_system=True,
            system_kind=event.kind,
        )
        self._insert(notice)
        self._confirmed_ids.add(notice.id)
        return notice

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _insert(self, message: ChatMessage) -> None:
        index = bisect.bisect_right(self._items, message.timestamp, key=_timestamp)
        self._items.insert(index, message)

    def _replace(self, index: int, message: ChatMessage) -> None:
        before_ok = index == 0 or self._items[index - 1].timestamp <= message.timestamp
        after_ok = (
            index == len(self._items) - 1
            or message.timestamp <= self._items[index + 1].timestamp
        )
        if before_ok and after_ok:
            self._items[index] = message
        else:
            # Keep timestamp order when the server time passes a neighbour.
            del self._items[index]
            self._insert(message)
        self._confirmed_ids.add(message.id)

    def _match_optimistic(self, message: ChatMessage) -> Optional[int]:
        for index, entry in enumerate(self._items):
            if (
                isinstance(entry, OptimisticMessage)
                and entry.sender_id == message.sender_id
                and entry.content == message.content
                and abs(message.timestamp - entry.timestamp) < self.window
            ):
                return index
        return None

    def _index_of_optimistic(self, temp_id: str) -> Optional[int]:
        for index, entry in enumerate(self._items):
            if isinstance(entry, OptimisticMessage) and entry.id == temp_id:
                return index
        return None


def group_by_date(
    messages: Iterable[ChatMessage],
    today: Optional[date] = None,
    tz: tzinfo = timezone.utc,
) -> List[Tuple[str, List[ChatMessage]]]:
    """Group an ordered message list by calendar day for display.

    Labels are "Today", "Yesterday", or the ISO date. Pure; the input order is
    kept within and across groups.
    """
    today = today or datetime.now(tz).date()
    yesterday = today - timedelta(days=1)
    groups: "OrderedDict[str, List[ChatMessage]]" = OrderedDict()
    for message in messages:
        day = message.timestamp.astimezone(tz).date()
        if day == today:
            label = "Today"
        elif day == yesterday:
            label = "Yesterday"
        else:
            label = day.isoformat()
        groups.setdefault(label, []).append(message)
    return list(groups.items())
