"""Service wiring.

All stateful collaborators are built once per application and hung off
``app.state.services``; routers fetch them through ``get_services``. Nothing
here is a module-level singleton, so tests build a fresh bundle (usually on an
in-memory database) for every app they create.
"""
import logging
from dataclasses import dataclass

from fastapi import Request

from genielearn.auth.service import SessionStore
from genielearn.chat.gateway import ChatGateway
from genielearn.chat.registry import ConnectionRegistry
from genielearn.chat.store import MessageStore
from genielearn.config import AppSettings
from genielearn.database import Database
from genielearn.groups.service import GroupService

logger = logging.getLogger(__name__)


@dataclass
class Services:
    db: Database
    sessions: SessionStore
    groups: GroupService
    messages: MessageStore
    registry: ConnectionRegistry
    gateway: ChatGateway

    def close(self) -> None:
        self.db.close()


def build_services(config: AppSettings) -> Services:
    """Create the collaborator stores and the chat gateway for one app."""
    db = Database(config.database.path)
    sessions = SessionStore(
        db,
        pepper=config.secrets.session.token_pepper,
        ttl_minutes=config.auth.session_ttl_minutes,
    )
    groups = GroupService(db)
    messages = MessageStore(db)
    registry = ConnectionRegistry()
    gateway = ChatGateway(
        registry=registry,
        sessions=sessions,
        groups=groups,
        messages=messages,
        send_timeout=config.chat.send_timeout_seconds,
    )
    logger.info("[Services] Wired services on database %s", config.database.path)
    return Services(
        db=db,
        sessions=sessions,
        groups=groups,
        messages=messages,
        registry=registry,
        gateway=gateway,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
