"""
Credential verification.

Turns a password pair or a Google credential into an IdentityClaim. Pure
verification: nothing here writes to the store.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from src.kernel.identity.account_store import AccountStore
from src.kernel.identity.errors import EmailUnverified, InvalidCredentials, WrongAuthMethod
from src.kernel.identity.google import GoogleIdentityProvider, GoogleProfile
from src.kernel.identity.password import PasswordHasher
from src.kernel.models.user import AuthMethod, User
from src.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class IdentityClaim:
    """Normalized result of a successful credential check."""

    email: str
    email_verified: bool
    method: AuthMethod
    first_name: str = ""
    last_name: str = ""
    avatar: Optional[str] = None
    subject_id: Optional[str] = None
    # Set when the claim was matched to an existing local account
    account_id: Optional[uuid.UUID] = None

    @classmethod
    def from_account(cls, user: User) -> "IdentityClaim":
        return cls(
            email=user.email,
            email_verified=bool(user.email_verified),
            method=user.method,
            first_name=user.first_name,
            last_name=user.last_name,
            avatar=user.avatar,
            subject_id=user.google_id,
            account_id=user.id,
        )

    @classmethod
    def from_google(cls, profile: GoogleProfile) -> "IdentityClaim":
        return cls(
            email=profile.email,
            email_verified=profile.email_verified,
            method=AuthMethod.GOOGLE,
            first_name=profile.given_name,
            last_name=profile.family_name,
            avatar=profile.avatar_url,
            subject_id=profile.subject_id,
        )


class CredentialVerifier:
    """Checks passwords against stored hashes and Google credentials against Google."""

    def __init__(
        self,
        store: AccountStore,
        hasher: PasswordHasher,
        provider: GoogleIdentityProvider,
    ):
        self.store = store
        self.hasher = hasher
        self.provider = provider
        self._dummy_hash: Optional[str] = None

    async def _burn_hash(self, candidate: str) -> None:
        """Spend one bcrypt check so unknown identifiers cost as much as known ones."""
        if self._dummy_hash is None:
            self._dummy_hash = await self.hasher.hash_async("not-a-real-password")
        await self.hasher.verify_async(candidate, self._dummy_hash)

    async def verify_password(self, identifier: str, candidate: str) -> IdentityClaim:
        """
        Match ``identifier`` (email or username) and ``candidate`` to a local account.

        Raises:
            InvalidCredentials: unknown identifier, inactive account or wrong password
            WrongAuthMethod: the account signs in with Google
        """
        user = await self.store.find_by_email_or_username(identifier)
        if user is None:
            await self._burn_hash(candidate)
            logger.warning("Login for unknown identifier")
            raise InvalidCredentials()

        if user.method is AuthMethod.GOOGLE:
            logger.warning("Password login attempted on Google account", extra={"user_id": str(user.id)})
            raise WrongAuthMethod()

        password_ok = await self.hasher.verify_async(candidate, user.password_hash)
        if not password_ok or not user.is_active:
            logger.warning(
                "Password login rejected",
                extra={"user_id": str(user.id), "inactive": not user.is_active},
            )
            raise InvalidCredentials()

        if self.hasher.needs_rehash(user.password_hash):
            # Hash predates the configured work factor; the pipeline re-hashes
            await self.store.update_fields(user, password=candidate)
            logger.info("Password hash upgraded", extra={"user_id": str(user.id)})

        return IdentityClaim.from_account(user)

    async def check_secret(self, user: User, candidate: str) -> bool:
        """Whether ``candidate`` is the current password of a local account."""
        if user.method is not AuthMethod.LOCAL:
            raise WrongAuthMethod("Password change is not available for Google authenticated accounts")
        return await self.hasher.verify_async(candidate, user.password_hash)

    async def verify_federated_assertion(self, id_token: str) -> IdentityClaim:
        """Validate a Google ID token obtained client-side."""
        profile = await self.provider.verify_id_token(id_token)
        return self._require_verified(profile)

    async def verify_authorization_code(self, code: str) -> IdentityClaim:
        """Exchange a Google authorization code and validate the resulting profile."""
        profile = await self.provider.exchange_code(code)
        return self._require_verified(profile)

    @staticmethod
    def _require_verified(profile: GoogleProfile) -> IdentityClaim:
        if not profile.email_verified:
            raise EmailUnverified()
        return IdentityClaim.from_google(profile)
