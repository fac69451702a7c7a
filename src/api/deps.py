"""
FastAPI dependencies for authentication, authorization, and database sessions.
"""

from functools import lru_cache
from typing import Annotated, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import AuthConfig, get_auth_config
from src.database import get_db
from src.kernel.identity.errors import Forbidden
from src.kernel.identity.google import GoogleIdentityProvider
from src.kernel.identity.jwt import extract_bearer_token
from src.kernel.identity.session_manager import SessionManager
from src.kernel.models.user import User, UserRole


DbSession = Annotated[AsyncSession, Depends(get_db)]
Config = Annotated[AuthConfig, Depends(get_auth_config)]


@lru_cache
def get_google_provider() -> GoogleIdentityProvider:
    """Process-wide provider client, so the JWKS cache outlives a request."""
    return GoogleIdentityProvider(get_auth_config())


def get_client_ip(request: Request) -> Optional[str]:
    """Extract client IP from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_user_agent(request: Request) -> Optional[str]:
    """Extract user agent from request."""
    return request.headers.get("User-Agent")


async def get_session_manager(
    request: Request,
    db: DbSession,
    config: Config,
    provider: Annotated[GoogleIdentityProvider, Depends(get_google_provider)],
) -> SessionManager:
    """Request-scoped session manager bound to the request's DB session."""
    return SessionManager(
        db,
        config,
        provider=provider,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )


Sessions = Annotated[SessionManager, Depends(get_session_manager)]


async def get_current_user(
    sessions: Sessions,
    authorization: Annotated[Optional[str], Header()] = None,
) -> User:
    """
    Get current authenticated user.

    Missing or bad tokens raise TokenInvalid / TokenExpired (401), inactive
    accounts AccountDeactivated (403); the app's AuthError handler renders them.
    """
    token = extract_bearer_token(authorization)
    return await sessions.authenticate_access_token(token)


CurrentUser = Annotated[User, Depends(get_current_user)]


async def require_admin(user: CurrentUser) -> User:
    """Require the current user to be an admin."""
    if user.role_value != UserRole.ADMIN.value:
        raise Forbidden()
    return user


AdminUser = Annotated[User, Depends(require_admin)]
