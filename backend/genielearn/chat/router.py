"""Chat router providing WebSocket and HTTP endpoints.

This module provides:
    - GET  /groups/{group_id}/messages: Paginated message history
    - POST /messages/create: HTTP send (fallback and primary client path)
    - WebSocket /ws/groups/{group_id}?token=...: Real-time group chat

The WebSocket protocol supports:
    - Authentication with an opaque session token in the query string
    - Membership check against the group on connect
    - User joined/left system notices (ephemeral)
    - Real-time message broadcasting, sender included

Close codes for refused connections:
    - 4401 unauthenticated
    - 4403 forbidden (not a member)
    - 4404 not_found (no such group)
"""
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from genielearn.auth.router import current_identity
from genielearn.auth.service import Identity
from genielearn.errors import GenieLearnError
from genielearn.services import Services, get_services

from .registry import ConnectionState
from .store import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


class CreateMessageRequest(BaseModel):
    """Body of POST /messages/create."""
    group_id: str = Field(..., description="Target group")
    content: str = Field(default="", description="Message text (1..1000 chars after trimming)")


@router.get("/groups/{group_id}/messages")
async def get_message_history(
    group_id: str,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Page size"),
    offset: int = Query(0, ge=0, description="Number of messages to skip"),
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
) -> JSONResponse:
    """Get one page of a group's history, oldest first.

    Clients paginate by repeating the request with an increasing ``offset``
    until a page shorter than ``limit`` comes back.

    Example:
        GET /groups/abc123/messages?limit=100&offset=200
    """
    try:
        await services.gateway.authorize(identity.user_id, group_id)
    except GenieLearnError as exc:
        raise exc.to_http()

    messages = await services.messages.list(group_id, limit=limit, offset=offset)
    return JSONResponse([msg.model_dump(mode="json") for msg in messages])


@router.post("/messages/create")
async def create_message(
    body: CreateMessageRequest,
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
) -> JSONResponse:
    """Persist a message and broadcast it to the group's live connections.

    Returns:
        The persisted message (server-assigned id and timestamp).
    """
    try:
        message = await services.gateway.post_message(identity, body.group_id, body.content)
    except GenieLearnError as exc:
        logger.info(f"[HTTP] create_message rejected for {identity.user_id}: {exc.code}")
        raise exc.to_http()
    return JSONResponse(message.model_dump(mode="json"))


@router.websocket("/ws/groups/{group_id}")
async def group_chat_socket(
    websocket: WebSocket,
    group_id: str,
    token: Optional[str] = Query(None, description="Opaque session token"),
) -> None:
    """WebSocket endpoint for real-time chat in one group.

    Protocol Flow:
        1. Client connects with ?token=... → server authenticates and checks
           membership; on failure the socket is accepted and immediately
           closed with the matching close code and reason.
        2. Other members receive {type: "system", kind: "joined"}.
        3. Client sends {type: "message", content}
           → Server persists and broadcasts {type: "message", ...} to all.
           → Invalid input yields {type: "error"} to the sender only.
        4. On disconnect → remaining members receive {type: "system", kind: "left"}.
    """
    gateway = websocket.app.state.services.gateway
    logger.info(f"[WS] New connection to group: {group_id}")

    try:
        connection = await gateway.admit(websocket, group_id, token)
    except GenieLearnError as exc:
        await websocket.accept()
        await websocket.close(code=exc.close_code, reason=exc.code)
        return

    await websocket.accept()
    await gateway.open(connection)

    try:
        # Events from one socket are handled strictly in arrival order.
        while connection.state is ConnectionState.OPEN:
            raw = await websocket.receive_text()
            try:
                payload = json.loads(raw)
            except ValueError:
                payload = None
            await gateway.handle_event(connection, payload)
    except WebSocketDisconnect:
        logger.info(f"[WS] {connection.user_id} disconnected from group {group_id}")
    finally:
        await gateway.release(connection)
