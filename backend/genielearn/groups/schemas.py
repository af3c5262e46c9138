"""Pydantic schemas for study groups and their members."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class GroupCreate(BaseModel):
    """Request body for creating a group."""
    name: str = Field(..., min_length=1, max_length=100, description="Group name")
    description: str = Field(default="", max_length=500, description="Optional description")


class Group(BaseModel):
    id: str = Field(..., description="Unique group ID")
    name: str
    description: str = ""
    created_by: str = Field(..., description="User ID of the creator")
    created_at: datetime
    member_count: int = 0


class GroupMember(BaseModel):
    user_id: str
    display_name: str
    joined_at: datetime


class MembershipChange(BaseModel):
    """Response for join/leave requests."""
    group_id: str
    user_id: str
    is_member: bool
    changed: bool = Field(..., description="False when the request was a no-op")
    notice: Optional[str] = None
