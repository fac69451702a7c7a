"""
Google identity provider client.

Two ways in, one profile shape out:
- a client-side ID token, verified against Google's published JWKS;
- a server-side authorization code, exchanged at the token endpoint and
  followed by a userinfo call.

All HTTP goes through httpx with a bounded timeout. Transport failures
surface as ProviderUnavailable, provider rejections as InvalidAssertion.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
from jose import JWTError, jwt

from src.config import AuthConfig
from src.kernel.identity.errors import InvalidAssertion, ProviderUnavailable
from src.logging_config import get_logger

logger = get_logger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_CERTS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")
GOOGLE_SCOPES = (
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
)

# python-jose has no JWKS client; keys are fetched through the shared httpx
# client and kept per provider instance, refetched on expiry or unknown kid.
JWKS_CACHE_SECONDS = 3600


@dataclass(frozen=True)
class GoogleProfile:
    """Profile fields both sign-in paths normalize to."""

    subject_id: str
    email: str
    email_verified: bool
    given_name: str = ""
    family_name: str = ""
    avatar_url: Optional[str] = None


class GoogleIdentityProvider:
    """Verifies Google credentials for the configured OAuth client."""

    def __init__(self, config: AuthConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport
        self._jwks: Optional[Dict[str, Any]] = None
        self._jwks_fetched_at = 0.0

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.config.provider_timeout_seconds,
            transport=self._transport,
        )

    def get_auth_url(self, state: Optional[str] = None) -> str:
        """Authorization URL for the server-side (code exchange) flow."""
        params = {
            "client_id": self.config.google_client_id,
            "redirect_uri": self.config.google_redirect_uri,
            "response_type": "code",
            "scope": " ".join(GOOGLE_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
        }
        if state:
            params["state"] = state
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def _get_json(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.request(method, url, **kwargs)
        except (httpx.TimeoutException, httpx.TransportError) as e:
            logger.warning("Google request failed", extra={"url": url, "error": str(e)})
            raise ProviderUnavailable()

        if response.status_code >= 500:
            logger.warning("Google returned %s", response.status_code, extra={"url": url})
            raise ProviderUnavailable()
        if response.status_code != 200:
            raise InvalidAssertion()
        try:
            data = response.json()
        except ValueError:
            raise InvalidAssertion()
        if not isinstance(data, dict):
            raise InvalidAssertion()
        return data

    async def _signing_keys(self, force: bool = False) -> Dict[str, Any]:
        fresh = time.monotonic() - self._jwks_fetched_at < JWKS_CACHE_SECONDS
        if self._jwks is None or force or not fresh:
            jwks = await self._get_json("GET", GOOGLE_CERTS_URL)
            if not isinstance(jwks.get("keys"), list):
                raise ProviderUnavailable()
            self._jwks = jwks
            self._jwks_fetched_at = time.monotonic()
        return self._jwks

    async def verify_id_token(self, id_token: str) -> GoogleProfile:
        """Validate signature, audience, issuer and expiry of a Google ID token."""
        if not self.config.google_client_id:
            logger.error("Google sign-in attempted without a configured client id")
            raise ProviderUnavailable("Google sign-in is not configured")
        if not isinstance(id_token, str) or not id_token:
            raise InvalidAssertion()

        try:
            kid = jwt.get_unverified_header(id_token).get("kid")
        except JWTError:
            raise InvalidAssertion()

        jwks = await self._signing_keys()
        if kid and not any(k.get("kid") == kid for k in jwks["keys"]):
            # Google rotated its keys since we cached them
            jwks = await self._signing_keys(force=True)

        try:
            claims = jwt.decode(
                id_token,
                jwks,
                algorithms=["RS256"],
                audience=self.config.google_client_id,
                options={"verify_at_hash": False},
            )
        except JWTError as e:
            logger.warning("Google ID token rejected", extra={"error": str(e)})
            raise InvalidAssertion()

        if claims.get("iss") not in GOOGLE_ISSUERS:
            raise InvalidAssertion()

        return self._profile(
            subject_id=claims.get("sub"),
            email=claims.get("email"),
            email_verified=claims.get("email_verified"),
            given_name=claims.get("given_name"),
            family_name=claims.get("family_name"),
            avatar_url=claims.get("picture"),
        )

    async def exchange_code(self, code: str) -> GoogleProfile:
        """Trade an authorization code for tokens, then fetch the profile."""
        if not self.config.google_client_id or not self.config.google_client_secret:
            logger.error("Google code exchange attempted without client credentials")
            raise ProviderUnavailable("Google sign-in is not configured")
        if not isinstance(code, str) or not code:
            raise InvalidAssertion()

        tokens = await self._get_json(
            "POST",
            GOOGLE_TOKEN_URL,
            data={
                "code": code,
                "client_id": self.config.google_client_id,
                "client_secret": self.config.google_client_secret,
                "redirect_uri": self.config.google_redirect_uri,
                "grant_type": "authorization_code",
            },
        )
        access_token = tokens.get("access_token")
        if not access_token:
            raise InvalidAssertion()
        return await self.get_user_info(access_token)

    async def get_user_info(self, access_token: str) -> GoogleProfile:
        data = await self._get_json(
            "GET",
            GOOGLE_USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        return self._profile(
            subject_id=data.get("id"),
            email=data.get("email"),
            email_verified=data.get("verified_email"),
            given_name=data.get("given_name"),
            family_name=data.get("family_name"),
            avatar_url=data.get("picture"),
        )

    @staticmethod
    def _profile(
        subject_id: Any,
        email: Any,
        email_verified: Any,
        given_name: Any,
        family_name: Any,
        avatar_url: Any,
    ) -> GoogleProfile:
        if not subject_id or not email:
            raise InvalidAssertion()
        # Google has sent this as both a bool and the string "true"
        verified = email_verified is True or str(email_verified).lower() == "true"
        return GoogleProfile(
            subject_id=str(subject_id),
            email=str(email).strip().lower(),
            email_verified=verified,
            given_name=given_name or "",
            family_name=family_name or "",
            avatar_url=avatar_url or None,
        )
