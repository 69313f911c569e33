"""
Admin invitation router
"""

import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.auth import build_auth_response
from app.core.dependencies import get_current_user, require_admin
from app.database import get_db
from app.models.user import User
from app.schemas.auth import AuthResponse, MessageResponse, TokenClaims
from app.schemas.invite import InviteAccept, InviteCreate, InviteResponse, InviteVerification
from app.services.email_service import EmailService, get_email_service
from app.services.invite_service import InviteService
from app.services.token_service import TokenService, get_token_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=InviteResponse, status_code=status.HTTP_201_CREATED)
async def create_invite(
    invite_data: InviteCreate,
    background_tasks: BackgroundTasks,
    admin: TokenClaims = Depends(require_admin),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service)
) -> InviteResponse:
    """
    Invite a new administrator by email.

    The invitation email is sent in the background; a delivery failure is
    logged and does not affect the created invitation.

    Args:
        invite_data: Invitee email and role
        background_tasks: FastAPI background tasks
        admin: Verified admin claims
        current_user: Inviting admin
        db: Database session
        email_service: Outgoing email

    Returns:
        InviteResponse: Created invitation

    Raises:
        InvalidArgument: If the role is not an admin role
        Conflict: If the email belongs to a user or already has a pending invitation
    """
    service = InviteService(db)
    invite = await service.create_invite(invite_data, invited_by=current_user.user_id)

    background_tasks.add_task(
        email_service.send_invitation_email,
        invite.email,
        service.invite_url(invite.invite_token),
        current_user.full_name or current_user.email
    )

    return InviteResponse.model_validate(invite)


@router.get("", response_model=List[InviteResponse])
async def list_invites(
    admin: TokenClaims = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
) -> List[InviteResponse]:
    invites = await InviteService(db).list_invites()
    return [InviteResponse.model_validate(invite) for invite in invites]


@router.get("/verify", response_model=InviteVerification)
async def verify_invite(
    token: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db)
) -> InviteVerification:
    """
    Check an invitation token before showing the registration form.

    Raises:
        NotFound: If the token is unknown or already used
        InvalidArgument: If the invitation has expired
    """
    return await InviteService(db).verify_invite(token)


@router.post("/accept", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def accept_invite(
    accept_data: InviteAccept,
    db: AsyncSession = Depends(get_db),
    token_service: TokenService = Depends(get_token_service)
) -> AuthResponse:
    """
    Create the administrator account for an invitation and log it in.
    """
    user, roles = await InviteService(db).accept_invite(accept_data)
    return build_auth_response(user, roles, token_service)


@router.delete("/{invitation_id}", response_model=MessageResponse)
async def revoke_invite(
    invitation_id: int,
    admin: TokenClaims = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
) -> MessageResponse:
    await InviteService(db).revoke_invite(invitation_id)
    logger.info(f"User {admin.user_id} revoked invitation {invitation_id}")
    return MessageResponse(message="Invitation revoked successfully")
