"""
User repository for identity, linked account and role queries
"""

from typing import List, Optional

from sqlalchemy import and_, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.models.oauth_account import OAuthAccount
from app.models.profile import ClientProfile, FreelancerProfile, VideoEditorProfile, VideographerProfile
from app.models.role import Role, UserRole
from app.models.user import User


class UserRepository:
    """Repository for user database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # Users
    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.user_id == user_id))
        return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """
        Get user by email, ignoring case.

        Args:
            email: Email address in any case

        Returns:
            Optional[User]: User if found, None otherwise
        """
        result = await self.db.execute(select(User).where(User.email == email.strip().lower()))
        return result.scalar_one_or_none()

    async def get_user_by_username(self, username: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def add_user(self, user: User) -> User:
        """
        Insert a user and assign its primary key.

        Raises:
            IntegrityError: If email or username is already taken
        """
        self.db.add(user)
        await self.db.flush()
        return user

    # Linked provider accounts
    async def get_oauth_account(self, provider: str, provider_user_id: str) -> Optional[OAuthAccount]:
        result = await self.db.execute(
            select(OAuthAccount).where(
                and_(
                    OAuthAccount.provider == provider,
                    OAuthAccount.provider_user_id == provider_user_id
                )
            )
        )
        return result.scalar_one_or_none()

    async def get_user_oauth_account(self, user_id: int, provider: str) -> Optional[OAuthAccount]:
        result = await self.db.execute(
            select(OAuthAccount).where(
                and_(
                    OAuthAccount.user_id == user_id,
                    OAuthAccount.provider == provider
                )
            )
        )
        return result.scalar_one_or_none()

    async def list_oauth_accounts(self, user_id: int) -> List[OAuthAccount]:
        result = await self.db.execute(
            select(OAuthAccount)
            .where(OAuthAccount.user_id == user_id)
            .order_by(OAuthAccount.created_at, OAuthAccount.id)
        )
        return list(result.scalars().all())

    async def add_oauth_account(self, account: OAuthAccount) -> OAuthAccount:
        """
        Insert a provider link.

        Raises:
            IntegrityError: If the provider identity or the (user, provider) pair is already linked
        """
        self.db.add(account)
        await self.db.flush()
        return account

    async def delete_oauth_account(self, user_id: int, provider: str) -> int:
        result = await self.db.execute(
            delete(OAuthAccount).where(
                and_(
                    OAuthAccount.user_id == user_id,
                    OAuthAccount.provider == provider
                )
            )
        )
        return result.rowcount

    # Roles
    async def get_user_roles(self, user_id: int) -> List[str]:
        """
        Get the names of the roles held by a user.

        Args:
            user_id: User ID

        Returns:
            List of role names, in assignment order
        """
        result = await self.db.execute(
            select(Role.name)
            .join(UserRole, UserRole.role_id == Role.role_id)
            .where(UserRole.user_id == user_id)
            .order_by(UserRole.id)
        )
        return list(result.scalars().all())

    async def get_role_by_name(self, name: str) -> Optional[Role]:
        result = await self.db.execute(select(Role).where(Role.name == name))
        return result.scalar_one_or_none()

    async def get_user_role(self, user_id: int, role_id: int) -> Optional[UserRole]:
        result = await self.db.execute(
            select(UserRole).where(
                and_(
                    UserRole.user_id == user_id,
                    UserRole.role_id == role_id
                )
            )
        )
        return result.scalar_one_or_none()

    async def add_user_role(self, user_id: int, role_id: int) -> UserRole:
        user_role = UserRole(user_id=user_id, role_id=role_id)
        self.db.add(user_role)
        await self.db.flush()
        return user_role

    # Profiles
    async def get_client_profile(self, user_id: int) -> Optional[ClientProfile]:
        result = await self.db.execute(select(ClientProfile).where(ClientProfile.user_id == user_id))
        return result.scalar_one_or_none()

    async def get_freelancer_profile(self, user_id: int) -> Optional[FreelancerProfile]:
        result = await self.db.execute(select(FreelancerProfile).where(FreelancerProfile.user_id == user_id))
        return result.scalar_one_or_none()

    async def get_videographer_profile(self, freelancer_id: int) -> Optional[VideographerProfile]:
        result = await self.db.execute(
            select(VideographerProfile).where(VideographerProfile.freelancer_id == freelancer_id)
        )
        return result.scalar_one_or_none()

    async def get_videoeditor_profile(self, freelancer_id: int) -> Optional[VideoEditorProfile]:
        result = await self.db.execute(
            select(VideoEditorProfile).where(VideoEditorProfile.freelancer_id == freelancer_id)
        )
        return result.scalar_one_or_none()

    async def add(self, instance):
        self.db.add(instance)
        await self.db.flush()
        return instance
