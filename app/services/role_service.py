"""
Role selection service

Assigns business roles to users, creates the profiles each role needs and
grants the one-time freelancer signup bonus.
"""

import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidArgument, NotFound
from app.core.time import utcnow
from app.database import transaction
from app.models.profile import ClientProfile, FreelancerProfile, VideoEditorProfile, VideographerProfile
from app.models.role import FREELANCER_ROLES, RoleName
from app.models.user import User
from app.repositories.user_repository import UserRepository
from app.schemas.oauth import RoleStatus, SetRoleResult, SignupBonusResult
from app.services.token_service import get_token_service

logger = logging.getLogger(__name__)

SIGNUP_BONUS_CREDITS = 5
MAX_ASSIGN_ATTEMPTS = 3


class RoleService:
    """Service for role assignment and role status."""

    def __init__(self, db: AsyncSession):
        """
        Initialize role service.

        Args:
            db: Database session
        """
        self.db = db
        self.repository = UserRepository(db)
        self.token_service = get_token_service()

    async def set_role(self, user_id: int, role_name: str) -> SetRoleResult:
        """
        Give a user a role and make sure the matching profiles exist.

        Calling it again with a role the user already holds adds nothing but
        still returns a freshly issued token.

        Args:
            user_id: User ID
            role_name: Role name (CLIENT, VIDEOGRAPHER, VIDEO_EDITOR, ...)

        Returns:
            SetRoleResult: New token, current roles and signup bonus outcome

        Raises:
            NotFound: If the user does not exist
            InvalidArgument: If the role is unknown
            IntegrityError: If concurrent assignments keep colliding
        """
        role_name = role_name.upper()
        signup_bonus = None

        for attempt in range(1, MAX_ASSIGN_ATTEMPTS + 1):
            try:
                email = await self._assign(user_id, role_name)
                break
            except IntegrityError:
                if attempt == MAX_ASSIGN_ATTEMPTS:
                    logger.error(f'Giving up on role "{role_name}" for user {user_id} after {attempt} attempts')
                    raise
                logger.warning(f'Concurrent role assignment for user {user_id}, retrying ({attempt})')

        logger.info(f'Role "{role_name}" set for user {user_id}')

        if role_name in FREELANCER_ROLES:
            signup_bonus = await self.grant_signup_bonus(user_id, role_name)

        roles = await self.repository.get_user_roles(user_id)
        token = self.token_service.issue(user_id, email, roles)

        return SetRoleResult(token=token, roles=roles, signup_bonus=signup_bonus)

    async def _assign(self, user_id: int, role_name: str) -> str:
        """Insert the role and its profiles in one transaction; returns the user's email."""
        async with transaction(self.db):
            user = await self.repository.get_user_by_id(user_id)
            if not user:
                raise NotFound("User not found")

            role = await self.repository.get_role_by_name(role_name)
            if not role:
                raise InvalidArgument(f'Role "{role_name}" not found in system')

            existing = await self.repository.get_user_role(user_id, role.role_id)
            if not existing:
                await self.repository.add_user_role(user_id, role.role_id)

            if role_name == RoleName.CLIENT.value:
                await self._ensure_client_profile(user_id)
            elif role_name in FREELANCER_ROLES:
                await self._ensure_freelancer_profile(user, role_name)

            return user.email

    async def get_user_role_status(self, user_id: int) -> RoleStatus:
        """
        Check whether a user still has to pick a role.

        Args:
            user_id: User ID

        Returns:
            RoleStatus: Current roles and the role selection flag
        """
        roles = await self.repository.get_user_roles(user_id)
        return RoleStatus(
            has_role=len(roles) > 0,
            roles=roles,
            needs_role_selection=len(roles) == 0
        )

    async def _ensure_client_profile(self, user_id: int) -> ClientProfile:
        profile = await self.repository.get_client_profile(user_id)
        if not profile:
            profile = await self.repository.add(ClientProfile(user_id=user_id))
            logger.info(f"Created client profile for user {user_id}")
        return profile

    async def _ensure_freelancer_profile(self, user: User, role_name: str) -> FreelancerProfile:
        freelancer = await self.repository.get_freelancer_profile(user.user_id)
        if not freelancer:
            freelancer = await self.repository.add(FreelancerProfile(
                user_id=user.user_id,
                profile_title=user.full_name or "Freelancer",
                rate_amount=0,
                currency="INR",
                availability="full-time"
            ))
            logger.info(f"Created freelancer profile for user {user.user_id}")

        if role_name == RoleName.VIDEOGRAPHER.value:
            if not await self.repository.get_videographer_profile(freelancer.freelancer_id):
                await self.repository.add(VideographerProfile(freelancer_id=freelancer.freelancer_id))
                logger.info(f"Created videographer profile for user {user.user_id}")
        elif role_name == RoleName.VIDEO_EDITOR.value:
            if not await self.repository.get_videoeditor_profile(freelancer.freelancer_id):
                await self.repository.add(VideoEditorProfile(freelancer_id=freelancer.freelancer_id))
                logger.info(f"Created video editor profile for user {user.user_id}")

        return freelancer

    async def grant_signup_bonus(self, user_id: int, role_name: str) -> SignupBonusResult:
        """
        Credit the one-time welcome bonus to a freelancer profile.

        The credit is a conditional update on the unclaimed flag, so
        concurrent or repeated calls grant it at most once. Failures are
        reported in the result and never undo the role assignment.

        Args:
            user_id: User ID
            role_name: Freelancer role that triggered the bonus

        Returns:
            SignupBonusResult: Outcome of the grant
        """
        if role_name not in FREELANCER_ROLES:
            return SignupBonusResult(
                success=False,
                message="Signup bonus is only available for freelancers (Videographer/Video Editor)"
            )

        try:
            async with transaction(self.db):
                result = await self.db.execute(
                    update(FreelancerProfile)
                    .where(
                        FreelancerProfile.user_id == user_id,
                        FreelancerProfile.signup_bonus_claimed.is_(False)
                    )
                    .values(
                        credits_balance=FreelancerProfile.credits_balance + SIGNUP_BONUS_CREDITS,
                        signup_bonus_claimed=True,
                        updated_at=utcnow()
                    )
                    .execution_options(synchronize_session=False)
                )
        except SQLAlchemyError as e:
            logger.error(f"Error giving signup bonus to user {user_id}: {e}")
            return SignupBonusResult(success=False, message="Failed to apply signup bonus")

        if result.rowcount != 1:
            logger.info(f"Signup bonus already claimed for user {user_id}")
            return SignupBonusResult(success=False, message="Signup bonus already claimed")

        logger.info(f"Gave {SIGNUP_BONUS_CREDITS} signup credits to user {user_id} ({role_name})")
        return SignupBonusResult(
            success=True,
            credits_added=SIGNUP_BONUS_CREDITS,
            message=f"Welcome! You've received {SIGNUP_BONUS_CREDITS} free keys to get started."
        )
