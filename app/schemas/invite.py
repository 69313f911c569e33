"""
Admin invitation schemas
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class InviteCreate(BaseModel):
    """Invite a new administrator."""

    email: EmailStr
    assigned_role: str = "ADMIN"


class InviteAccept(BaseModel):
    """Complete an invitation by creating the admin account."""

    token: str = Field(..., min_length=1)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field("", max_length=100)
    password: str = Field(..., min_length=8, max_length=100)


class InviteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    invitation_id: int
    email: str
    status: str
    assigned_role: str
    invited_by: Optional[int] = None
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    created_at: datetime


class InviteVerification(BaseModel):
    valid: bool
    email: Optional[str] = None
    assigned_role: Optional[str] = None
    expires_at: Optional[datetime] = None
