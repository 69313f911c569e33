"""
Pydantic schemas for the Freelance Marketplace API
"""

from app.schemas.auth import (
    AuthResponse,
    MessageResponse,
    TokenClaims,
    UserLogin,
    UserProfile,
    UserRegister
)
from app.schemas.invite import InviteAccept, InviteCreate, InviteResponse, InviteVerification
from app.schemas.oauth import (
    ApiResponse,
    OAuthCallbackResult,
    OAuthTokens,
    OAuthUser,
    OAuthUserData,
    RoleStatus,
    SetRoleResult,
    SignupBonusResult
)
from app.schemas.upload import DocumentUploadResponse, HealthCheck

__all__ = [
    "ApiResponse",
    "AuthResponse",
    "DocumentUploadResponse",
    "HealthCheck",
    "InviteAccept",
    "InviteCreate",
    "InviteResponse",
    "InviteVerification",
    "MessageResponse",
    "OAuthCallbackResult",
    "OAuthTokens",
    "OAuthUser",
    "OAuthUserData",
    "RoleStatus",
    "SetRoleResult",
    "SignupBonusResult",
    "TokenClaims",
    "UserLogin",
    "UserProfile",
    "UserRegister",
]
