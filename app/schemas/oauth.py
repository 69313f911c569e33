"""
OAuth, account linking and role selection schemas
"""

from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope used by the OAuth management endpoints."""

    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None


# Provider adapter records
class OAuthUserData(BaseModel):
    """Normalized identity returned by a login provider."""

    provider_id: str
    email: str = ""
    email_verified: bool = False
    first_name: str = ""
    last_name: str = ""
    profile_picture: Optional[str] = None
    raw_data: Dict[str, Any] = {}


class OAuthTokens(BaseModel):
    """Tokens granted by a login provider."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    id_token: Optional[str] = None


class AuthorizationRequest(BaseModel):
    """Everything needed to send a browser to a provider's consent page."""

    url: str
    state: str
    code_verifier: Optional[str] = None


class ProviderInfo(BaseModel):
    """Enabled login provider as shown to the frontend."""

    name: str
    display_name: str
    auth_url: str


# Account linking results
class OAuthUser(BaseModel):
    """Public view of the resolved local user."""

    model_config = ConfigDict(from_attributes=True)

    user_id: int
    email: str
    username: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_picture: Optional[str] = None
    email_verified: bool = False
    roles: List[str] = []


class OAuthCallbackResult(BaseModel):
    """Outcome of a completed provider login."""

    user: OAuthUser
    token: str
    is_new_user: bool


class AvailableProviders(BaseModel):
    providers: List[ProviderInfo]


class LinkedProviders(BaseModel):
    providers: List[str]


class RefreshTokenRequest(BaseModel):
    provider: str = "google"


class RefreshedToken(BaseModel):
    access_token: str
    expires_at: Optional[datetime] = None


# Role selection
class SetRoleRequest(BaseModel):
    role: str = Field(..., min_length=1)


class SignupBonusResult(BaseModel):
    """Side effect of the first freelancer role assignment."""

    success: bool
    credits_added: int = 0
    message: str


class SetRoleResult(BaseModel):
    token: str
    roles: List[str]
    signup_bonus: Optional[SignupBonusResult] = None


class SetRoleResponse(BaseModel):
    user_id: int
    role: str
    redirect: str
    token: str
    signup_bonus: Optional[SignupBonusResult] = None


class RoleStatus(BaseModel):
    has_role: bool
    roles: List[str]
    needs_role_selection: bool
