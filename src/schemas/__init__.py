"""
Pydantic schemas for API request/response validation.
"""

from src.schemas.auth import (
    RegisterRequest,
    LoginRequest,
    GoogleAuthRequest,
    GoogleCallbackRequest,
    RefreshTokenRequest,
    LogoutRequest,
    ChangePasswordRequest,
    PasswordResetRequest,
    ResetPasswordRequest,
    VerifyEmailRequest,
    ProfileUpdate,
    UserResponse,
    AuthResponse,
    TokenResponse,
    ProfileResponse,
    AuthUrlResponse,
    PasswordResetTokenResponse,
    ActivityEvent,
    ActivityResponse,
)
from src.schemas.common import ErrorResponse, SuccessResponse, HealthResponse

__all__ = [
    "RegisterRequest",
    "LoginRequest",
    "GoogleAuthRequest",
    "GoogleCallbackRequest",
    "RefreshTokenRequest",
    "LogoutRequest",
    "ChangePasswordRequest",
    "PasswordResetRequest",
    "ResetPasswordRequest",
    "VerifyEmailRequest",
    "ProfileUpdate",
    "UserResponse",
    "AuthResponse",
    "TokenResponse",
    "ProfileResponse",
    "AuthUrlResponse",
    "PasswordResetTokenResponse",
    "ActivityEvent",
    "ActivityResponse",
    "ErrorResponse",
    "SuccessResponse",
    "HealthResponse",
]
