"""
Business logic services for the Freelance Marketplace API
"""

from app.services.auth import AuthService
from app.services.invite_service import InviteService
from app.services.oauth_service import OAuthService
from app.services.role_service import RoleService
from app.services.s3_service import S3Service

__all__ = ["AuthService", "InviteService", "OAuthService", "RoleService", "S3Service"]
