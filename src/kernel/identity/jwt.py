"""
JWT token management for authentication.

Access tokens and refresh tokens are signed with different secrets, so a
leaked access secret cannot forge refresh tokens and vice versa. Narrow
purpose tokens (password reset, email verification) share the access
secret but carry a ``purpose`` claim that must match on verification.

Verification is stateless. Whether a refresh token has already been
rotated away is decided by the identity store, not here.
"""

import hashlib
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from jose import JWTError, jwt
from pydantic import BaseModel

from src.config import AuthConfig
from src.kernel.identity.errors import TokenExpired, TokenInvalid, WrongPurpose


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"
    PURPOSE = "purpose"


class TokenPurpose(str, Enum):
    PASSWORD_RESET = "password_reset"
    EMAIL_VERIFICATION = "email_verification"


class TokenClaims(BaseModel):
    """Verified claims of any token minted by this service."""

    sub: str  # Account ID
    iss: str
    aud: str
    exp: int
    iat: int
    jti: str
    type: TokenType
    purpose: Optional[TokenPurpose] = None

    @property
    def account_id(self) -> uuid.UUID:
        return uuid.UUID(self.sub)


class TokenPair(BaseModel):
    """Access and refresh token pair."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # Seconds until access token expires


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JWTManager:
    """
    JWT token creation and verification.

    ``verify_*`` methods only ever raise TokenInvalid, TokenExpired or
    WrongPurpose, whatever they are handed.
    """

    def __init__(
        self,
        config: AuthConfig,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.config = config
        self.clock = clock

    @property
    def access_ttl(self) -> timedelta:
        return timedelta(minutes=self.config.access_token_expire_minutes)

    @property
    def refresh_ttl(self) -> timedelta:
        return timedelta(days=self.config.refresh_token_expire_days)

    def _purpose_ttl(self, purpose: TokenPurpose) -> timedelta:
        if purpose is TokenPurpose.PASSWORD_RESET:
            return timedelta(minutes=self.config.password_reset_expire_minutes)
        return timedelta(hours=self.config.email_verification_expire_hours)

    def _encode(
        self,
        account_id: uuid.UUID,
        token_type: TokenType,
        ttl: timedelta,
        secret: str,
        purpose: Optional[TokenPurpose] = None,
    ) -> str:
        now = self.clock()
        payload = {
            "sub": str(account_id),
            "iss": self.config.issuer,
            "aud": self.config.audience,
            "iat": int(now.timestamp()),
            "exp": int((now + ttl).timestamp()),
            # Two tokens minted in the same second must still differ
            "jti": uuid.uuid4().hex,
            "type": token_type.value,
        }
        if purpose is not None:
            payload["purpose"] = purpose.value
        return jwt.encode(payload, secret, algorithm=self.config.algorithm)

    def create_access_token(self, account_id: uuid.UUID) -> str:
        return self._encode(account_id, TokenType.ACCESS, self.access_ttl, self.config.access_secret)

    def create_refresh_token(self, account_id: uuid.UUID) -> str:
        return self._encode(account_id, TokenType.REFRESH, self.refresh_ttl, self.config.refresh_secret)

    def create_purpose_token(self, account_id: uuid.UUID, purpose: TokenPurpose) -> str:
        """Short-lived single-use-intent token signed with the access secret."""
        return self._encode(
            account_id,
            TokenType.PURPOSE,
            self._purpose_ttl(purpose),
            self.config.access_secret,
            purpose=purpose,
        )

    def mint(self, account_id: uuid.UUID) -> TokenPair:
        """Create both access and refresh tokens for an account."""
        return TokenPair(
            access_token=self.create_access_token(account_id),
            refresh_token=self.create_refresh_token(account_id),
            expires_in=int(self.access_ttl.total_seconds()),
        )

    def _decode(self, token: str, secret: str, expected_type: TokenType) -> TokenClaims:
        """
        Check signature, issuer, audience and type, then expiry.

        Expiry is checked last and by hand so that a token whose only
        defect is its age is reported as TokenExpired, and anything else
        wrong with it as TokenInvalid.
        """
        if not isinstance(token, str) or not token:
            raise TokenInvalid()
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.config.algorithm],
                audience=self.config.audience,
                issuer=self.config.issuer,
                options={
                    "verify_exp": False,
                    "require_exp": True,
                    "require_iat": True,
                    "require_sub": True,
                    "require_jti": True,
                },
            )
            claims = TokenClaims.model_validate(payload)
            uuid.UUID(claims.sub)
        except (JWTError, ValueError, TypeError, AttributeError, KeyError):
            raise TokenInvalid()

        if claims.type is not expected_type:
            raise TokenInvalid()

        return claims

    def _check_expiry(self, claims: TokenClaims) -> TokenClaims:
        if claims.exp <= int(self.clock().timestamp()):
            raise TokenExpired()
        return claims

    def verify_access(self, token: str) -> TokenClaims:
        """Verify an access token and return its claims."""
        claims = self._decode(token, self.config.access_secret, TokenType.ACCESS)
        return self._check_expiry(claims)

    def verify_refresh(self, token: str) -> TokenClaims:
        """Verify a refresh token's signature and claims (not its store state)."""
        claims = self._decode(token, self.config.refresh_secret, TokenType.REFRESH)
        return self._check_expiry(claims)

    def verify_purpose(self, token: str, purpose: TokenPurpose) -> TokenClaims:
        """Verify a purpose token issued for exactly ``purpose``."""
        claims = self._decode(token, self.config.access_secret, TokenType.PURPOSE)
        if claims.purpose is not purpose:
            raise WrongPurpose()
        return self._check_expiry(claims)

    @staticmethod
    def hash_token(token: str) -> str:
        """
        SHA-256 digest of a token, used as its store reference.

        The raw refresh token never reaches the database.
        """
        return hashlib.sha256(token.encode()).hexdigest()


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Pull the token out of an ``Authorization: Bearer <token>`` header value."""
    if not authorization:
        raise TokenInvalid("Not authenticated")
    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise TokenInvalid("Not authenticated")
    return token
