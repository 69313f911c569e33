"""
Authentication service for local email/password accounts
"""

import logging
from typing import List, Tuple

from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AccountForbidden, Conflict, InvalidCredentials
from app.core.time import utcnow
from app.database import transaction
from app.models.user import User
from app.repositories.user_repository import UserRepository
from app.schemas.auth import UserRegister
from app.services.oauth_service import generate_username

logger = logging.getLogger(__name__)

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class AuthService:
    """Authentication service for local accounts."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repository = UserRepository(db)

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """
        Verify a plain password against its hash.

        Args:
            plain_password: Plain text password
            hashed_password: Hashed password from database

        Returns:
            bool: True if password matches
        """
        if not hashed_password:
            return False
        return pwd_context.verify(plain_password, hashed_password)

    @staticmethod
    def get_password_hash(password: str) -> str:
        """
        Hash a password.

        Args:
            password: Plain text password

        Returns:
            str: Hashed password
        """
        return pwd_context.hash(password)

    async def register(self, user_data: UserRegister) -> User:
        """
        Create new local user.

        Args:
            user_data: User registration data

        Returns:
            User: Created user (no role yet)

        Raises:
            Conflict: If the email or username is already taken
        """
        email = user_data.email.strip().lower()

        async with transaction(self.db):
            if await self.repository.get_user_by_email(email):
                raise Conflict("Email already registered")

            username = user_data.username or generate_username(email)
            if await self.repository.get_user_by_username(username):
                raise Conflict("Username already taken")

            user = await self.repository.add_user(User(
                email=email,
                username=username,
                password=self.get_password_hash(user_data.password),
                first_name=user_data.first_name or "",
                last_name=user_data.last_name or "",
                email_verified=False,
                is_active=True,
                is_banned=False,
                login_attempts=0
            ))

        logger.info(f"Registered local user {user.user_id} ({email})")
        return user

    async def authenticate(self, email: str, password: str) -> Tuple[User, List[str]]:
        """
        Authenticate user with email and password.

        Failed attempts are counted on the user; a successful login resets
        the counter and records the login time.

        Args:
            email: User email
            password: Plain text password

        Returns:
            Tuple of (user, role names)

        Raises:
            InvalidCredentials: If the email is unknown or the password is wrong
            AccountForbidden: If the account is banned or deactivated
        """
        async with transaction(self.db):
            user = await self.repository.get_user_by_email(email)
            if not user:
                raise InvalidCredentials()

            if user.is_banned:
                raise AccountForbidden("Account is banned")
            if not user.is_active:
                raise AccountForbidden("Your account is deactivated. Please contact support.")

            authenticated = self.verify_password(password, user.password)
            if authenticated:
                user.login_attempts = 0
                user.last_login_at = utcnow()
            else:
                user.login_attempts = (user.login_attempts or 0) + 1

        if not authenticated:
            logger.warning(f"Failed login for user {user.user_id} (attempt {user.login_attempts})")
            raise InvalidCredentials()

        roles = await self.repository.get_user_roles(user.user_id)
        return user, roles
