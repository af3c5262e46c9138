"""Session endpoints.

Endpoints:
    GET  /auth/status  - Whether the caller holds a valid session
    GET  /auth/me      - Identity behind the caller's session
    POST /auth/logout  - Revoke the caller's session

Credentials are read from ``Authorization: Bearer <token>`` first, then from
the session cookie named by ``auth.cookie_name``.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from genielearn.config import get_config
from genielearn.errors import Unauthenticated
from genielearn.services import Services, get_services

from .service import Identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def extract_credential(request: Request) -> Optional[str]:
    """Pull the opaque session token out of a request, if any."""
    authorization = request.headers.get("authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return request.cookies.get(get_config().auth.cookie_name) or None


async def current_identity(
    request: Request,
    services: Services = Depends(get_services),
) -> Identity:
    """Dependency resolving the caller's identity; 401 when absent."""
    try:
        return await services.sessions.verify(extract_credential(request))
    except Unauthenticated as exc:
        raise exc.to_http()


@router.get("/status")
async def session_status(
    request: Request,
    services: Services = Depends(get_services),
) -> dict:
    """Report whether the caller has a server-verified session.

    The chat client calls this before opening its live connection.
    """
    try:
        await services.sessions.verify(extract_credential(request))
    except Unauthenticated:
        return {"has_session": False}
    return {"has_session": True}


@router.get("/me", response_model=Identity)
async def me(identity: Identity = Depends(current_identity)) -> Identity:
    return identity


@router.post("/logout")
async def logout(
    request: Request,
    services: Services = Depends(get_services),
) -> JSONResponse:
    """Revoke the caller's session and clear the cookie."""
    credential = extract_credential(request)
    revoked = bool(credential) and services.sessions.revoke(credential)
    response = JSONResponse({"revoked": revoked})
    response.delete_cookie(get_config().auth.cookie_name)
    return response
