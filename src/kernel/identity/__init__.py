"""
Identity Core - credential verification, token engine and session lifecycle.
"""

from src.kernel.identity.errors import AuthError
from src.kernel.identity.password import PasswordHasher
from src.kernel.identity.jwt import (
    JWTManager,
    TokenPair,
    TokenClaims,
    TokenPurpose,
    extract_bearer_token,
)
from src.kernel.identity.account_pipeline import AccountPipeline
from src.kernel.identity.account_store import AccountStore
from src.kernel.identity.google import GoogleIdentityProvider, GoogleProfile
from src.kernel.identity.credentials import CredentialVerifier, IdentityClaim
from src.kernel.identity.session_manager import SessionManager, SessionResult

__all__ = [
    "AuthError",
    "PasswordHasher",
    "JWTManager",
    "TokenPair",
    "TokenClaims",
    "TokenPurpose",
    "extract_bearer_token",
    "AccountPipeline",
    "AccountStore",
    "GoogleIdentityProvider",
    "GoogleProfile",
    "CredentialVerifier",
    "IdentityClaim",
    "SessionManager",
    "SessionResult",
]
