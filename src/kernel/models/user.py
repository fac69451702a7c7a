"""
Account model for identity management.

An account authenticates either locally (bcrypt password hash) or through a
federated provider (Google subject id). The auth_method column is the
discriminant; code branches on it explicitly.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, TimestampMixin, generate_uuid, utcnow


class UserRole(str, Enum):
    """User roles in the system."""
    USER = "user"
    ADMIN = "admin"


class AuthMethod(str, Enum):
    """How an account proves its identity."""
    LOCAL = "local"
    GOOGLE = "google"


class User(Base, TimestampMixin):
    """User account model."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    username: Mapped[Optional[str]] = mapped_column(
        String(30),
        unique=True,
        index=True,
        nullable=True,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    # Present only for local accounts
    password_hash: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    first_name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="",
    )
    last_name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="",
    )
    avatar: Mapped[Optional[str]] = mapped_column(
        String(2048),
        nullable=True,
    )
    role: Mapped[UserRole] = mapped_column(
        String(20),
        default=UserRole.USER,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    email_verified: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    auth_method: Mapped[AuthMethod] = mapped_column(
        String(20),
        nullable=False,
    )
    google_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=True,
    )
    last_login: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    @property
    def method(self) -> AuthMethod:
        """auth_method as an enum (SQLite hands back plain strings)."""
        return AuthMethod(self.auth_method)

    @property
    def role_value(self) -> str:
        return self.role.value if hasattr(self.role, "value") else str(self.role)

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.auth_method})>"


class RefreshTokenReference(Base):
    """
    A refresh token an account may still redeem.

    Only the SHA-256 digest of the token string is stored. Deleting the row
    is what makes the token unusable.
    """

    __tablename__ = "refresh_token_references"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )
