"""
Database models for the Freelance Marketplace API
"""

from app.models.admin_invite import AdminInvite, InviteStatus
from app.models.oauth_account import OAuthAccount
from app.models.profile import ClientProfile, FreelancerProfile, VideoEditorProfile, VideographerProfile
from app.models.role import Role, RoleName, UserRole
from app.models.upload import DocumentUpload
from app.models.user import User

__all__ = [
    "AdminInvite",
    "ClientProfile",
    "DocumentUpload",
    "FreelancerProfile",
    "InviteStatus",
    "OAuthAccount",
    "Role",
    "RoleName",
    "User",
    "UserRole",
    "VideoEditorProfile",
    "VideographerProfile",
]
