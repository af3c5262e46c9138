"""Python client for GenieLearn group chat."""
from .chat import GroupChatClient
from .errors import ChatClientError
from .history import HistoryLoader
from .reconcile import ApplyResult, MessageList, OptimisticMessage, group_by_date

__all__ = [
    "ApplyResult",
    "ChatClientError",
    "GroupChatClient",
    "HistoryLoader",
    "MessageList",
    "OptimisticMessage",
    "group_by_date",
]
