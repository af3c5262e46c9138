"""Study group REST API router.

Endpoints:
    POST /groups                       - Create a group (caller becomes a member)
    GET  /groups                       - Groups the caller belongs to
    GET  /groups/{group_id}            - Group details
    GET  /groups/{group_id}/members    - Member list (members only)
    POST /groups/{group_id}/join       - Join a group
    POST /groups/{group_id}/leave      - Leave a group

Join and leave announce an ephemeral system notice to the group's live chat
connections.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from genielearn.auth.router import current_identity
from genielearn.auth.service import Identity
from genielearn.chat.schemas import SystemKind
from genielearn.errors import GenieLearnError, GroupNotFound
from genielearn.services import Services, get_services

from .schemas import Group, GroupCreate, GroupMember, MembershipChange

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/groups", tags=["groups"])


def _require_group(services: Services, group_id: str) -> Group:
    group = services.groups.get(group_id)
    if group is None:
        raise GroupNotFound().to_http()
    return group


@router.post("", response_model=Group, status_code=201)
async def create_group(
    body: GroupCreate,
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
) -> Group:
    name = body.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Group name cannot be empty.")
    return services.groups.create(
        name=name,
        created_by=identity.user_id,
        creator_name=identity.display_name,
        description=body.description,
    )


@router.get("", response_model=List[Group])
async def my_groups(
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
) -> List[Group]:
    return services.groups.list_for_user(identity.user_id)


@router.get("/{group_id}", response_model=Group)
async def get_group(
    group_id: str,
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
) -> Group:
    return _require_group(services, group_id)


@router.get("/{group_id}/members", response_model=List[GroupMember])
async def list_members(
    group_id: str,
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
) -> List[GroupMember]:
    try:
        await services.gateway.authorize(identity.user_id, group_id)
    except GenieLearnError as exc:
        raise exc.to_http()
    return services.groups.members(group_id)


@router.post("/{group_id}/join", response_model=MembershipChange)
async def join_group(
    group_id: str,
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
) -> MembershipChange:
    """Join a group and let connected members know."""
    _require_group(services, group_id)
    changed = services.groups.add_member(group_id, identity.user_id, identity.display_name)
    notice = None
    if changed:
        notice = f"{identity.display_name} joined the group"
        await services.gateway.announce(group_id, notice, kind=SystemKind.JOINED)
    return MembershipChange(
        group_id=group_id,
        user_id=identity.user_id,
        is_member=True,
        changed=changed,
        notice=notice,
    )


@router.post("/{group_id}/leave", response_model=MembershipChange)
async def leave_group(
    group_id: str,
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
) -> MembershipChange:
    """Leave a group and let connected members know.

    Live chat connections the user already holds are not cut; membership is
    only checked when a connection is opened.
    """
    _require_group(services, group_id)
    changed = services.groups.remove_member(group_id, identity.user_id)
    notice = None
    if changed:
        notice = f"{identity.display_name} left the group"
        await services.gateway.announce(group_id, notice, kind=SystemKind.LEFT)
    return MembershipChange(
        group_id=group_id,
        user_id=identity.user_id,
        is_member=False,
        changed=changed,
        notice=notice,
    )
