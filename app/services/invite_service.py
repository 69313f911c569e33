"""
Admin invitation service
"""

import logging
import secrets
from datetime import timedelta
from typing import List, Tuple

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.exceptions import Conflict, InvalidArgument, NotFound
from app.core.time import ensure_aware, utcnow
from app.database import transaction
from app.models.admin_invite import AdminInvite, InviteStatus
from app.models.role import ADMIN_ROLES
from app.models.user import User
from app.repositories.user_repository import UserRepository
from app.schemas.invite import InviteAccept, InviteCreate, InviteVerification
from app.services.auth import AuthService
from app.services.oauth_service import generate_username

logger = logging.getLogger(__name__)
settings = get_settings()


class InviteService:
    """Service for inviting, verifying and onboarding administrators."""

    def __init__(self, db: AsyncSession):
        """
        Initialize invite service.

        Args:
            db: Database session
        """
        self.db = db
        self.repository = UserRepository(db)

    @staticmethod
    def invite_url(token: str) -> str:
        base_url = settings.admin_panel_url or settings.frontend_url
        return f"{base_url.rstrip('/')}/register?token={token}"

    async def create_invite(self, data: InviteCreate, invited_by: int) -> AdminInvite:
        """
        Create a pending invitation.

        A previous accepted, revoked or expired invitation for the same
        address is retired so a new one can be issued.

        Args:
            data: Invitee email and role
            invited_by: User ID of the inviting admin

        Returns:
            AdminInvite: Created invitation

        Raises:
            InvalidArgument: If the role is not an admin role
            Conflict: If the email belongs to a user or already has a pending invitation
        """
        email = data.email.strip().lower()
        assigned_role = data.assigned_role.upper()
        if assigned_role not in ADMIN_ROLES:
            raise InvalidArgument(f"Invalid role. Must be one of: {', '.join(ADMIN_ROLES)}")

        async with transaction(self.db):
            if await self.repository.get_user_by_email(email):
                raise Conflict("User with this email already exists")

            result = await self.db.execute(
                select(AdminInvite).where(
                    and_(
                        AdminInvite.email == email,
                        AdminInvite.is_deleted.is_(False)
                    )
                )
            )
            for existing in result.scalars().all():
                if existing.status == InviteStatus.PENDING.value and ensure_aware(existing.expires_at) > utcnow():
                    raise Conflict("An invitation is already pending for this email")
                existing.is_deleted = True

            invite = AdminInvite(
                email=email,
                invite_token=secrets.token_hex(32),
                status=InviteStatus.PENDING.value,
                assigned_role=assigned_role,
                invited_by=invited_by,
                expires_at=utcnow() + timedelta(hours=settings.invite_expire_hours),
                is_deleted=False
            )
            self.db.add(invite)
            await self.db.flush()

        logger.info(f"Admin invitation {invite.invitation_id} created for {email} by user {invited_by}")
        return invite

    async def list_invites(self) -> List[AdminInvite]:
        result = await self.db.execute(
            select(AdminInvite)
            .where(AdminInvite.is_deleted.is_(False))
            .order_by(AdminInvite.created_at.desc(), AdminInvite.invitation_id.desc())
        )
        return list(result.scalars().all())

    async def _get_pending_invite(self, token: str) -> AdminInvite:
        """
        Load a pending invitation, expiring it if its deadline has passed.

        Raises:
            NotFound: If no pending invitation has this token
            InvalidArgument: If the invitation has expired
        """
        async with transaction(self.db):
            result = await self.db.execute(
                select(AdminInvite).where(
                    and_(
                        AdminInvite.invite_token == token,
                        AdminInvite.status == InviteStatus.PENDING.value,
                        AdminInvite.is_deleted.is_(False)
                    )
                )
            )
            invite = result.scalar_one_or_none()
            if not invite:
                raise NotFound("Invalid or expired invitation token")

            expired = ensure_aware(invite.expires_at) <= utcnow()
            if expired:
                invite.status = InviteStatus.EXPIRED.value

        if expired:
            logger.info(f"Admin invitation {invite.invitation_id} expired")
            raise InvalidArgument("Invitation has expired")
        return invite

    async def verify_invite(self, token: str) -> InviteVerification:
        invite = await self._get_pending_invite(token)
        return InviteVerification(
            valid=True,
            email=invite.email,
            assigned_role=invite.assigned_role,
            expires_at=invite.expires_at
        )

    async def accept_invite(self, data: InviteAccept) -> Tuple[User, List[str]]:
        """
        Create the administrator account for an invitation.

        Args:
            data: Token, name and password chosen by the invitee

        Returns:
            Tuple of (created user, role names)

        Raises:
            NotFound: If the token is unknown or already used
            InvalidArgument: If the invitation has expired
            Conflict: If a user with the invited email exists
        """
        invite = await self._get_pending_invite(data.token)

        async with transaction(self.db):
            if await self.repository.get_user_by_email(invite.email):
                raise Conflict("User with this email already exists")

            user = await self.repository.add_user(User(
                first_name=data.first_name,
                last_name=data.last_name,
                username=generate_username(invite.email),
                email=invite.email,
                password=AuthService.get_password_hash(data.password),
                email_verified=True,
                is_active=True,
                is_banned=False,
                login_attempts=0
            ))

            role = await self.repository.get_role_by_name(invite.assigned_role)
            if role:
                await self.repository.add_user_role(user.user_id, role.role_id)

            invite.status = InviteStatus.ACCEPTED.value
            invite.accepted_at = utcnow()

        logger.info(f"Admin invitation {invite.invitation_id} accepted, created user {user.user_id}")
        roles = await self.repository.get_user_roles(user.user_id)
        return user, roles

    async def revoke_invite(self, invitation_id: int) -> None:
        """
        Revoke a pending invitation.

        Raises:
            NotFound: If the invitation does not exist or is no longer pending
        """
        async with transaction(self.db):
            invite = await self.db.get(AdminInvite, invitation_id)
            if not invite or invite.is_deleted or invite.status != InviteStatus.PENDING.value:
                raise NotFound("Invitation not found or already processed")
            invite.status = InviteStatus.REVOKED.value

        logger.info(f"Admin invitation {invitation_id} revoked")
