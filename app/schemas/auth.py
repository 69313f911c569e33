"""
Authentication schemas for bearer credentials and local accounts
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


# Token schemas
class TokenClaims(BaseModel):
    """Verified bearer credential payload."""

    user_id: int
    email: str
    roles: List[str] = []


# User authentication schemas
class UserRegister(BaseModel):
    """User registration schema."""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=100)
    username: Optional[str] = Field(None, min_length=3, max_length=50)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)


class UserLogin(BaseModel):
    """User login schema."""

    email: EmailStr
    password: str


class UserProfile(BaseModel):
    """User profile schema."""

    model_config = ConfigDict(from_attributes=True)

    user_id: int
    email: str
    username: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_picture: Optional[str] = None
    email_verified: bool
    is_active: bool
    created_at: datetime
    last_login_at: Optional[datetime] = None
    roles: List[str] = []


# Response schemas
class AuthResponse(BaseModel):
    """Authentication response schema."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserProfile


class MessageResponse(BaseModel):
    """Generic message response schema."""

    message: str
    detail: Optional[str] = None
