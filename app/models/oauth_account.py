"""
OAuth account model linking provider identities to users
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.core.time import utcnow
from app.database import Base


class OAuthAccount(Base):
    """One external identity (provider, provider_user_id) linked to exactly one user."""

    __tablename__ = "oauth_accounts"
    __table_args__ = (
        # Each provider account can only be linked to one user
        UniqueConstraint("provider", "provider_user_id", name="uk_oauth_provider_userid"),
        # Each user can only have one account per provider
        UniqueConstraint("user_id", "provider", name="uk_oauth_user_provider"),
        Index("idx_oauth_user_id", "user_id"),
    )

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True
    )

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False
    )

    provider: Mapped[str] = mapped_column(
        String(50),
        nullable=False
    )

    provider_user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False
    )

    # Provider tokens, Fernet-encrypted
    access_token: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True
    )

    refresh_token: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True
    )

    token_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    # Raw provider payload kept for audit/debugging
    provider_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON,
        nullable=True
    )

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

    def __repr__(self) -> str:
        return (
            f"<OAuthAccount(id={self.id}, provider='{self.provider}', "
            f"provider_user_id='{self.provider_user_id}', user_id={self.user_id})>"
        )
