"""
Role and user-role models
"""

import logging
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.core.time import utcnow
from app.database import Base

logger = logging.getLogger(__name__)


class RoleName(str, Enum):
    """Business roles known to the platform."""

    CLIENT = "CLIENT"
    VIDEOGRAPHER = "VIDEOGRAPHER"
    VIDEO_EDITOR = "VIDEO_EDITOR"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


FREELANCER_ROLES = (RoleName.VIDEOGRAPHER.value, RoleName.VIDEO_EDITOR.value)
ADMIN_ROLES = (RoleName.ADMIN.value, RoleName.SUPER_ADMIN.value)

PREDEFINED_ROLES = [
    {
        "name": RoleName.CLIENT.value,
        "label": "Client",
        "description": "Business or individual hiring freelancers",
    },
    {
        "name": RoleName.VIDEOGRAPHER.value,
        "label": "Videographer",
        "description": "Video shooting professional",
    },
    {
        "name": RoleName.VIDEO_EDITOR.value,
        "label": "Video Editor",
        "description": "Video editing professional",
    },
    {
        "name": RoleName.ADMIN.value,
        "label": "Administrator",
        "description": "Platform administrator with management access",
    },
    {
        "name": RoleName.SUPER_ADMIN.value,
        "label": "Super Administrator",
        "description": "Full platform access with all permissions",
    },
]


class Role(Base):
    """Named capability assigned to users."""

    __tablename__ = "role"

    role_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Role(role_id={self.role_id}, name='{self.name}')>"


class UserRole(Base):
    """Many-to-many join between users and roles."""

    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role_id", name="uk_user_roles_user_role"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    role_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("role.role_id", ondelete="CASCADE"),
        nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<UserRole(user_id={self.user_id}, role_id={self.role_id})>"


async def seed_roles(session: AsyncSession) -> None:
    """
    Insert the predefined roles that are missing.

    Args:
        session: Database session
    """
    result = await session.execute(select(Role.name))
    existing = set(result.scalars().all())

    missing = [role for role in PREDEFINED_ROLES if role["name"] not in existing]
    if not missing:
        return

    for role in missing:
        session.add(Role(**role))
    await session.commit()
    logger.info(f"Seeded roles: {', '.join(role['name'] for role in missing)}")
