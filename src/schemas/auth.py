"""
Authentication schemas.
"""

import re
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9]{3,30}$")


def _check_avatar(v: Optional[str]) -> Optional[str]:
    if v is None or v == "":
        return None
    if not re.match(r"^https?://\S+$", v):
        raise ValueError("Avatar must be a valid http(s) URL")
    return v


class RegisterRequest(BaseModel):
    """Local registration request."""

    username: str = Field(..., min_length=3, max_length=30)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    avatar: Optional[str] = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        v = v.strip()
        if not USERNAME_PATTERN.match(v):
            raise ValueError("Username must be 3-30 alphanumeric characters")
        return v

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name must not be blank")
        return v

    @field_validator("avatar")
    @classmethod
    def validate_avatar(cls, v: Optional[str]) -> Optional[str]:
        return _check_avatar(v)


class LoginRequest(BaseModel):
    """Login by email or username."""

    identifier: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)


class GoogleAuthRequest(BaseModel):
    """Client-side Google sign-in (ID token)."""

    id_token: str = Field(..., min_length=1)


class GoogleCallbackRequest(BaseModel):
    """Server-side Google sign-in (authorization code)."""

    code: str = Field(..., min_length=1)


class RefreshTokenRequest(BaseModel):
    """Token refresh request."""

    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    """Password change request."""

    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=6, max_length=128)


class PasswordResetRequest(BaseModel):
    """Ask for a password reset token."""

    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=128)


class VerifyEmailRequest(BaseModel):
    token: str = Field(..., min_length=1)


class ProfileUpdate(BaseModel):
    """
    Profile patch.

    Unknown keys are accepted and dropped by the session manager, so a
    client sending ``email`` or ``role`` gets a 200 with those unchanged.
    """

    model_config = ConfigDict(extra="allow")

    username: Optional[str] = None
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    avatar: Optional[str] = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not USERNAME_PATTERN.match(v):
            raise ValueError("Username must be 3-30 alphanumeric characters")
        return v

    @field_validator("first_name", "last_name")
    @classmethod
    def reject_null_name(cls, v: Optional[str]) -> str:
        # Omit the key to leave a name unchanged; null is not a value
        if v is None:
            raise ValueError("Name may be omitted but not set to null")
        return v

    @field_validator("avatar")
    @classmethod
    def validate_avatar(cls, v: Optional[str]) -> Optional[str]:
        return _check_avatar(v)


class UserResponse(BaseModel):
    """Account as shown to clients; never carries the password hash."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    username: Optional[str] = None
    email: str
    first_name: str
    last_name: str
    avatar: Optional[str] = None
    role: str
    is_active: bool
    email_verified: bool
    auth_method: str
    last_login: Optional[datetime] = None
    created_at: datetime


class AuthResponse(BaseModel):
    """Account plus a freshly issued token pair."""

    message: str
    user: UserResponse
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class TokenResponse(BaseModel):
    message: str
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class ProfileResponse(BaseModel):
    message: Optional[str] = None
    user: UserResponse


class AuthUrlResponse(BaseModel):
    auth_url: str


class PasswordResetTokenResponse(BaseModel):
    """
    Always the same message; the token is only present in debug mode since
    delivering it by email is someone else's job.
    """

    message: str
    token: Optional[str] = None


class ActivityEvent(BaseModel):
    """One audit row; ``user_id`` is whoever performed the action."""

    model_config = ConfigDict(from_attributes=True)

    event_type: str
    user_id: Optional[uuid.UUID] = None
    payload: dict
    ip_address: Optional[str] = None
    created_at: datetime


class ActivityResponse(BaseModel):
    account_id: uuid.UUID
    events: list[ActivityEvent]
