"""
Role-specific profile models
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.core.time import utcnow
from app.database import Base


class ClientProfile(Base):
    """Profile backing the CLIENT role."""

    __tablename__ = "client_profiles"

    client_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.user_id", ondelete="CASCADE"),
        unique=True,
        nullable=False
    )

    company_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False
    )


class FreelancerProfile(Base):
    """Profile shared by videographers and video editors."""

    __tablename__ = "freelancer_profiles"

    freelancer_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.user_id", ondelete="CASCADE"),
        unique=True,
        nullable=False
    )

    profile_title: Mapped[str] = mapped_column(String(255), nullable=False)

    rate_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="INR", nullable=False)
    availability: Mapped[Optional[str]] = mapped_column(
        String(50),
        default="full-time",
        nullable=True
    )

    # Credits ("keys") spent to apply for projects
    credits_balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    signup_bonus_claimed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False
    )


class VideographerProfile(Base):
    """Videographer sub-profile keyed by the freelancer profile."""

    __tablename__ = "videographer_profiles"

    videographer_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    freelancer_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("freelancer_profiles.freelancer_id", ondelete="CASCADE"),
        unique=True,
        nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False
    )


class VideoEditorProfile(Base):
    """Video editor sub-profile keyed by the freelancer profile."""

    __tablename__ = "videoeditor_profiles"

    editor_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    freelancer_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("freelancer_profiles.freelancer_id", ondelete="CASCADE"),
        unique=True,
        nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False
    )
