"""
Authentication endpoints.

Thin adapters over SessionManager: parse the request, call one operation,
commit it if it wrote anything (before the tokens go out), and
shape the response. Failures are AuthError subclasses rendered by the
handler registered in src.main.
"""

import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, status

from src.api.deps import AdminUser, CurrentUser, Sessions, get_google_provider
from src.config import get_settings
from src.kernel.identity.google import GoogleIdentityProvider
from src.kernel.identity.session_manager import SessionResult
from src.schemas.auth import (
    ActivityEvent,
    ActivityResponse,
    AuthResponse,
    AuthUrlResponse,
    ChangePasswordRequest,
    GoogleAuthRequest,
    GoogleCallbackRequest,
    LoginRequest,
    LogoutRequest,
    PasswordResetRequest,
    PasswordResetTokenResponse,
    ProfileResponse,
    ProfileUpdate,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    UserResponse,
    VerifyEmailRequest,
)
from src.schemas.common import ErrorResponse, SuccessResponse

router = APIRouter(
    responses={
        401: {"model": ErrorResponse, "description": "Missing, invalid or expired credentials"},
        403: {"model": ErrorResponse, "description": "Account deactivated or not permitted"},
    },
)


def _auth_response(message: str, result: SessionResult) -> AuthResponse:
    return AuthResponse(
        message=message,
        user=UserResponse.model_validate(result.user),
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        token_type=result.tokens.token_type,
        expires_in=result.tokens.expires_in,
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(data: RegisterRequest, sessions: Sessions):
    """
    Register a new local account.

    Returns access and refresh tokens on successful registration.
    """
    result = await sessions.register(
        username=data.username,
        email=data.email,
        password=data.password,
        first_name=data.first_name,
        last_name=data.last_name,
        avatar=data.avatar,
    )
    await sessions.commit()
    return _auth_response("User registered successfully", result)


@router.post("/login", response_model=AuthResponse)
async def login(data: LoginRequest, sessions: Sessions):
    """Authenticate with email or username and password."""
    result = await sessions.login(data.identifier, data.password)
    await sessions.commit()
    return _auth_response("Login successful", result)


@router.post("/google", response_model=AuthResponse)
async def google_login(data: GoogleAuthRequest, sessions: Sessions):
    """Sign in with a Google ID token obtained client-side."""
    result = await sessions.login_with_google(data.id_token)
    await sessions.commit()
    message = "Account created successfully" if result.created else "Login successful"
    return _auth_response(message, result)


@router.get("/google/url", response_model=AuthUrlResponse)
async def google_auth_url(
    provider: Annotated[GoogleIdentityProvider, Depends(get_google_provider)],
    state: Optional[str] = Query(None, max_length=512),
):
    """Authorization URL for the server-side Google flow."""
    return AuthUrlResponse(auth_url=provider.get_auth_url(state))


@router.post("/google/callback", response_model=AuthResponse)
async def google_callback(data: GoogleCallbackRequest, sessions: Sessions):
    """Complete the server-side Google flow with an authorization code."""
    result = await sessions.login_with_google_code(data.code)
    await sessions.commit()
    message = "Account created successfully" if result.created else "Login successful"
    return _auth_response(message, result)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(data: RefreshTokenRequest, sessions: Sessions):
    """
    Refresh access token using refresh token.

    Implements refresh token rotation - old refresh token is invalidated.
    """
    result = await sessions.refresh(data.refresh_token)
    await sessions.commit()
    return TokenResponse(
        message="Token refreshed successfully",
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        token_type=result.tokens.token_type,
        expires_in=result.tokens.expires_in,
    )


@router.post("/logout", response_model=SuccessResponse)
async def logout(user: CurrentUser, sessions: Sessions, data: Optional[LogoutRequest] = None):
    """Forget the given refresh token. Succeeds even if it was already gone."""
    await sessions.logout(user.id, data.refresh_token if data else None)
    await sessions.commit()
    return SuccessResponse(message="Logout successful")


@router.get("/me", response_model=ProfileResponse)
async def get_me(user: CurrentUser):
    """Get current user profile."""
    return ProfileResponse(user=UserResponse.model_validate(user))


@router.patch("/me", response_model=ProfileResponse)
async def update_me(data: ProfileUpdate, user: CurrentUser, sessions: Sessions):
    """
    Update current user profile.

    Only names, avatar and (local accounts) username change; anything else
    in the body is ignored.
    """
    updated = await sessions.update_profile(user.id, data.model_dump(exclude_unset=True))
    await sessions.commit()
    return ProfileResponse(
        message="Profile updated successfully",
        user=UserResponse.model_validate(updated),
    )


@router.post("/change-password", response_model=SuccessResponse)
async def change_password(data: ChangePasswordRequest, user: CurrentUser, sessions: Sessions):
    """Change password. Every refresh token of the account stops working."""
    await sessions.change_password(user.id, data.current_password, data.new_password)
    await sessions.commit()
    return SuccessResponse(message="Password changed successfully. Please log in again.")


@router.post("/forgot-password", response_model=PasswordResetTokenResponse)
async def forgot_password(data: PasswordResetRequest, sessions: Sessions):
    """Issue a password reset token; the answer is the same whether or not the email exists."""
    token = await sessions.issue_password_reset_token(data.email)
    return PasswordResetTokenResponse(
        message="If that email belongs to a password account, a reset link has been sent",
        token=token if get_settings().debug else None,
    )


@router.post("/reset-password", response_model=SuccessResponse)
async def reset_password(data: ResetPasswordRequest, sessions: Sessions):
    await sessions.reset_password(data.token, data.new_password)
    await sessions.commit()
    return SuccessResponse(message="Password has been reset. Please log in again.")


@router.post("/send-verification", response_model=SuccessResponse)
async def send_verification(user: CurrentUser, sessions: Sessions):
    """Issue an email verification token for the current account."""
    token = await sessions.issue_email_verification_token(user.id)
    return SuccessResponse(
        message="Verification email sent",
        data={"token": token} if get_settings().debug else None,
    )


@router.post("/verify-email", response_model=ProfileResponse)
async def verify_email(data: VerifyEmailRequest, sessions: Sessions):
    user = await sessions.verify_email(data.token)
    await sessions.commit()
    return ProfileResponse(message="Email verified", user=UserResponse.model_validate(user))


@router.post("/users/{account_id}/deactivate", response_model=ProfileResponse)
async def deactivate_user(account_id: uuid.UUID, admin: AdminUser, sessions: Sessions):
    """Deactivate an account (admin only)."""
    user = await sessions.deactivate(account_id, actor_id=admin.id)
    await sessions.commit()
    return ProfileResponse(message="User deactivated", user=UserResponse.model_validate(user))


@router.get("/users/{account_id}/activity", response_model=ActivityResponse)
async def user_activity(
    account_id: uuid.UUID,
    admin: AdminUser,
    sessions: Sessions,
    limit: int = Query(50, ge=1, le=200),
):
    """Audit trail of an account, newest first (admin only)."""
    events = await sessions.get_activity(account_id, limit=limit)
    return ActivityResponse(
        account_id=account_id,
        events=[ActivityEvent.model_validate(e) for e in events],
    )
