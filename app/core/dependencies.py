"""
FastAPI dependencies for authentication and service wiring
"""

from typing import Optional

from fastapi import Depends, UploadFile
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.exceptions import AccountForbidden, InvalidArgument, InvalidToken
from app.database import get_db
from app.models.role import ADMIN_ROLES
from app.models.user import User
from app.repositories.user_repository import UserRepository
from app.schemas.auth import TokenClaims
from app.services.oauth_providers import ProviderRegistry, get_provider_registry
from app.services.oauth_service import OAuthService
from app.services.role_service import RoleService
from app.services.token_service import TokenService, get_token_service

settings = get_settings()
security = HTTPBearer(auto_error=False)


async def get_token_claims(
    token: Optional[HTTPAuthorizationCredentials] = Depends(security),
    token_service: TokenService = Depends(get_token_service)
) -> TokenClaims:
    """
    Verify the bearer credential from the Authorization header.

    Args:
        token: Bearer token from Authorization header
        token_service: Token codec

    Returns:
        TokenClaims: Verified claims

    Raises:
        InvalidToken: If the header is missing or the token is invalid
    """
    if not token:
        raise InvalidToken("Authentication required")

    # HTTPBearer automatically extracts the token from "Bearer <token>" format
    return token_service.verify(token.credentials)


async def get_current_user(
    claims: TokenClaims = Depends(get_token_claims),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Get current user from authentication token.

    Args:
        claims: Verified token claims
        db: Database session

    Returns:
        User: Current authenticated user

    Raises:
        InvalidToken: If the user no longer exists
        AccountForbidden: If the user is banned or deactivated
    """
    user = await UserRepository(db).get_user_by_id(claims.user_id)
    if not user:
        raise InvalidToken()

    if user.is_banned or not user.is_active:
        raise AccountForbidden()

    return user


async def require_admin(claims: TokenClaims = Depends(get_token_claims)) -> TokenClaims:
    """
    Require an administrator role in the bearer credential.

    Raises:
        AccountForbidden: If the caller holds no admin role
    """
    if not any(role in ADMIN_ROLES for role in claims.roles):
        raise AccountForbidden("Admin access required")
    return claims


def get_oauth_service(
    db: AsyncSession = Depends(get_db),
    registry: ProviderRegistry = Depends(get_provider_registry)
) -> OAuthService:
    return OAuthService(db, registry=registry)


def get_role_service(db: AsyncSession = Depends(get_db)) -> RoleService:
    return RoleService(db)


async def read_upload(file: UploadFile) -> bytes:
    """
    Read an uploaded file, enforcing the size limit.

    Args:
        file: Uploaded file from FastAPI

    Returns:
        bytes: File content

    Raises:
        InvalidArgument: If the file is missing or too large
    """
    if not file or not file.filename:
        raise InvalidArgument("Filename is required")

    max_size_bytes = settings.max_file_size_mb * 1024 * 1024
    content = await file.read(max_size_bytes + 1)
    if len(content) > max_size_bytes:
        raise InvalidArgument(f"File too large. Maximum size: {settings.max_file_size_mb}MB")

    return content
