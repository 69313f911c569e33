"""
Local account authentication router
Email/password registration and login for users without an OAuth provider
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.dependencies import get_current_user
from app.database import get_db
from app.models.user import User
from app.repositories.user_repository import UserRepository
from app.schemas.auth import AuthResponse, UserLogin, UserProfile, UserRegister
from app.services.auth import AuthService
from app.services.token_service import TokenService, get_token_service

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter()


def build_auth_response(user: User, roles: List[str], token_service: TokenService) -> AuthResponse:
    profile = UserProfile.model_validate(user)
    profile.roles = roles
    return AuthResponse(
        access_token=token_service.issue(user.user_id, user.email, roles),
        token_type="bearer",
        expires_in=settings.jwt_expire_days * 24 * 60 * 60,
        user=profile
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register_user(
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db),
    token_service: TokenService = Depends(get_token_service)
) -> AuthResponse:
    """
    Register a new local user and return a bearer token.

    The new user has no role yet and goes through role selection like an
    OAuth user.

    Args:
        user_data: User registration data
        db: Database session
        token_service: Token codec

    Returns:
        AuthResponse: Bearer token and user profile

    Raises:
        Conflict: If the email or username is already taken
    """
    user = await AuthService(db).register(user_data)
    return build_auth_response(user, [], token_service)


@router.post("/login", response_model=AuthResponse)
async def login(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db),
    token_service: TokenService = Depends(get_token_service)
) -> AuthResponse:
    """
    Log in with email and password.

    Raises:
        InvalidCredentials: If the email or password is wrong
        AccountForbidden: If the account is banned or deactivated
    """
    user, roles = await AuthService(db).authenticate(credentials.email, credentials.password)
    logger.info(f"User {user.user_id} logged in with password")
    return build_auth_response(user, roles, token_service)


@router.get("/me", response_model=UserProfile)
async def get_current_user_profile(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> UserProfile:
    """
    Get current user profile.

    Args:
        current_user: Current authenticated user
        db: Database session

    Returns:
        UserProfile: User profile with current roles
    """
    profile = UserProfile.model_validate(current_user)
    profile.roles = await UserRepository(db).get_user_roles(current_user.user_id)
    return profile
