"""
Session manager: registration, login, refresh-token rotation and logout.

Combines the credential verifier, the token engine and the identity store.
Holds no state between calls beyond the request-scoped session it was built
with; all durable state lives in the store, and the caller owns the
transaction: ``commit()`` after a successful call, before anything it
returned (tokens above all) leaves the process. A failed call is rolled
back.
"""

import uuid
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import AuthConfig
from src.kernel.events.event_store import EventStore
from src.kernel.identity.account_pipeline import AccountPipeline
from src.kernel.identity.account_store import AccountStore
from src.kernel.identity.credentials import CredentialVerifier, IdentityClaim
from src.kernel.identity.errors import (
    AccountDeactivated,
    DuplicateAccount,
    DuplicateEmail,
    DuplicateUsername,
    IncorrectPassword,
    InvalidAssertion,
    InvalidRefreshToken,
    MethodMismatch,
    NotFound,
    TokenError,
    TokenInvalid,
    WrongAuthMethod,
)
from src.kernel.identity.google import GoogleIdentityProvider
from src.kernel.identity.jwt import JWTManager, TokenClaims, TokenPair, TokenPurpose
from src.kernel.identity.password import PasswordHasher
from src.kernel.models.base import utcnow
from src.kernel.models.event_log import EventLog, EventType
from src.kernel.models.user import AuthMethod, User, UserRole
from src.logging_config import get_logger

logger = get_logger(__name__)

# The only keys a profile patch may touch; everything else is dropped.
PROFILE_FIELDS = frozenset({"first_name", "last_name", "avatar", "username"})


@dataclass
class SessionResult:
    """An account plus the token pair just issued for it."""

    user: User
    tokens: TokenPair
    # True only when a federated sign-in created the account
    created: bool = False


class SessionManager:
    """
    Orchestrates the credential and session-token lifecycle.

    Every failure is raised as an AuthError subclass; see errors.py.
    """

    def __init__(
        self,
        session: AsyncSession,
        config: AuthConfig,
        *,
        tokens: Optional[JWTManager] = None,
        provider: Optional[GoogleIdentityProvider] = None,
        hasher: Optional[PasswordHasher] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ):
        self.config = config
        hasher = hasher or PasswordHasher(config.bcrypt_rounds)
        self.store = AccountStore(session, config, AccountPipeline(hasher))
        self.tokens = tokens or JWTManager(config)
        self.verifier = CredentialVerifier(
            self.store,
            hasher,
            provider or GoogleIdentityProvider(config),
        )
        self.event_store = EventStore(session)
        self.ip_address = ip_address
        self.user_agent = user_agent

    async def commit(self) -> None:
        """Persist the operations run so far; raises Internal if the store can't."""
        await self.store.commit()

    async def _audit(
        self,
        event_type: EventType,
        user: User,
        payload: Optional[dict[str, Any]] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> None:
        await self.event_store.log(
            event_type=event_type,
            entity_id=user.id,
            user_id=actor_id or user.id,
            payload=payload,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
        )

    async def _issue(self, user: User) -> TokenPair:
        """Mint a pair and record its refresh reference."""
        pair = self.tokens.mint(user.id)
        await self.store.append_refresh_token(user.id, pair.refresh_token)
        return pair

    async def _require_account(self, account_id: uuid.UUID) -> User:
        user = await self.store.find_by_id(account_id)
        if user is None:
            raise NotFound()
        return user

    # Registration and login

    async def register(
        self,
        *,
        username: str,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        avatar: Optional[str] = None,
    ) -> SessionResult:
        """
        Create a local account and sign it in.

        Raises:
            DuplicateEmail: email already owned (message names Google when
                the owner is a federated account)
            DuplicateUsername: username already taken
        """
        existing = await self.store.find_by_email(email)
        if existing is not None:
            if existing.method is AuthMethod.GOOGLE:
                raise DuplicateEmail(
                    "This email is already registered with Google. "
                    "Please sign in with Google instead."
                )
            raise DuplicateEmail()

        if username and await self.store.find_by_username(username) is not None:
            raise DuplicateUsername()

        user = await self.store.create(
            username=username,
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            avatar=avatar,
            role=UserRole.USER,
            auth_method=AuthMethod.LOCAL,
            is_active=True,
            email_verified=False,
        )
        pair = await self._issue(user)
        await self._audit(EventType.USER_REGISTERED, user, {"email": user.email, "method": "local"})
        logger.info("Account registered", extra={"user_id": str(user.id)})
        return SessionResult(user=user, tokens=pair, created=True)

    async def login(self, identifier: str, password: str) -> SessionResult:
        """
        Password login by email or username.

        Raises:
            InvalidCredentials: unknown account, inactive account or bad password
            WrongAuthMethod: the account signs in with Google
        """
        claim = await self.verifier.verify_password(identifier, password)
        user = await self._require_account(claim.account_id)
        pair = await self._issue(user)
        await self.store.update_fields(user, last_login=utcnow())
        await self._audit(EventType.USER_LOGGED_IN, user, {"method": "password"})
        logger.info("Password login", extra={"user_id": str(user.id)})
        return SessionResult(user=user, tokens=pair)

    async def login_with_google(self, id_token: str) -> SessionResult:
        """Sign in (or sign up) with a Google ID token."""
        claim = await self.verifier.verify_federated_assertion(id_token)
        return await self._federated_session(claim)

    async def login_with_google_code(self, code: str) -> SessionResult:
        """Sign in (or sign up) with a Google authorization code."""
        claim = await self.verifier.verify_authorization_code(code)
        return await self._federated_session(claim)

    async def _federated_session(self, claim: IdentityClaim) -> SessionResult:
        user, created = await self._reconcile_federated(claim)
        pair = await self._issue(user)
        await self._audit(
            EventType.USER_REGISTERED if created else EventType.USER_LOGGED_IN,
            user,
            {"method": "google"},
        )
        logger.info(
            "Google sign-in",
            extra={"user_id": str(user.id), "created": created},
        )
        return SessionResult(user=user, tokens=pair, created=created)

    async def _reconcile_federated(self, claim: IdentityClaim) -> tuple[User, bool]:
        """
        Find-or-create the account for a verified Google claim.

        The email is the matching key. A local account with that email is a
        MethodMismatch. Losing an insert race to a concurrent first sign-in
        shows up as a uniqueness violation; the lookup is retried once.
        """
        for attempt in range(2):
            user = await self.store.find_by_email(claim.email)
            if user is not None:
                if user.method is AuthMethod.LOCAL:
                    logger.warning("Google sign-in for password account", extra={"user_id": str(user.id)})
                    raise MethodMismatch()
                if user.google_id != claim.subject_id:
                    logger.warning("Google subject mismatch", extra={"user_id": str(user.id)})
                    raise InvalidAssertion("This email is linked to a different Google account")
                if not user.is_active:
                    raise AccountDeactivated()
                await self.store.update_fields(
                    user,
                    last_login=utcnow(),
                    avatar=claim.avatar or user.avatar,
                )
                return user, False

            try:
                user = await self.store.create(
                    email=claim.email,
                    first_name=claim.first_name,
                    last_name=claim.last_name,
                    avatar=claim.avatar,
                    role=UserRole.USER,
                    auth_method=AuthMethod.GOOGLE,
                    google_id=claim.subject_id,
                    is_active=True,
                    email_verified=True,
                    last_login=utcnow(),
                )
            except DuplicateAccount:
                if attempt == 0:
                    logger.info("Concurrent Google sign-up detected, retrying lookup")
                    continue
                raise
            return user, True

        raise DuplicateAccount()

    # Token lifecycle

    async def refresh(self, refresh_token: str) -> SessionResult:
        """
        Rotate a refresh token: the presented one is consumed, a new pair issued.

        Raises:
            InvalidRefreshToken: forged, expired, already rotated, revoked, or
                held by an account other than its subject
            AccountDeactivated: the holder is inactive
        """
        try:
            claims = self.tokens.verify_refresh(refresh_token)
        except TokenError:
            raise InvalidRefreshToken()

        user = await self.store.find_by_refresh_token(refresh_token)
        if user is None or user.id != claims.account_id:
            logger.warning("Refresh with unknown or reassigned token", extra={"subject": claims.sub})
            raise InvalidRefreshToken()
        if not user.is_active:
            raise AccountDeactivated()

        pair = self.tokens.mint(user.id)
        if not await self.store.rotate_refresh_token(user.id, refresh_token, pair.refresh_token):
            # Someone else consumed it between our lookup and our delete
            logger.warning("Refresh token replayed", extra={"user_id": str(user.id)})
            raise InvalidRefreshToken()

        await self._audit(EventType.TOKEN_REFRESHED, user)
        logger.info("Refresh token rotated", extra={"user_id": str(user.id)})
        return SessionResult(user=user, tokens=pair)

    async def logout(self, account_id: uuid.UUID, refresh_token: Optional[str] = None) -> None:
        """Forget ``refresh_token`` if the account holds it. Always succeeds."""
        removed = False
        if refresh_token:
            removed = await self.store.remove_refresh_token(account_id, refresh_token)
        user = await self.store.find_by_id(account_id)
        if user is not None:
            await self._audit(EventType.USER_LOGGED_OUT, user, {"token_removed": removed})
        logger.info("Logout", extra={"user_id": str(account_id), "token_removed": removed})

    async def authenticate_access_token(self, access_token: str) -> User:
        """
        Resolve the account behind an access token.

        Raises TokenExpired / TokenInvalid from the token engine,
        AccountDeactivated for inactive accounts.
        """
        claims = self.tokens.verify_access(access_token)
        user = await self.store.find_by_id(claims.account_id)
        if user is None:
            raise TokenInvalid("User not found")
        if not user.is_active:
            raise AccountDeactivated()
        return user

    # Account maintenance

    async def get_profile(self, account_id: uuid.UUID) -> User:
        return await self._require_account(account_id)

    async def update_profile(self, account_id: uuid.UUID, updates: Mapping[str, Any]) -> User:
        """
        Apply a profile patch.

        Only names, avatar and (for local accounts) username survive; email,
        password, role, token references and every other key are dropped
        whatever the caller sends.
        """
        user = await self._require_account(account_id)
        patch = {key: value for key, value in updates.items() if key in PROFILE_FIELDS}
        if user.method is not AuthMethod.LOCAL:
            patch.pop("username", None)

        username = patch.get("username")
        if username is not None and username != user.username:
            other = await self.store.find_by_username(username)
            if other is not None and other.id != user.id:
                raise DuplicateUsername()

        if patch:
            await self.store.update_fields(user, **patch)
            await self._audit(EventType.USER_UPDATED, user, {"fields": sorted(patch)})
        return user

    async def change_password(
        self,
        account_id: uuid.UUID,
        current_password: str,
        new_password: str,
    ) -> None:
        """
        Replace the password and revoke every refresh token the account holds.

        Raises:
            WrongAuthMethod: Google account
            IncorrectPassword: ``current_password`` does not match
        """
        user = await self._require_account(account_id)
        if not await self.verifier.check_secret(user, current_password):
            raise IncorrectPassword()

        await self.store.update_fields(user, password=new_password)
        purged = await self.store.purge_refresh_tokens(user.id)
        await self._audit(EventType.USER_PASSWORD_CHANGED, user, {"revoked_tokens": purged})
        logger.info("Password changed", extra={"user_id": str(user.id), "revoked_tokens": purged})

    async def issue_password_reset_token(self, email: str) -> Optional[str]:
        """
        Reset token for an active local account, or None.

        None covers unknown, federated and inactive accounts alike so the
        caller can answer every request the same way. Delivery is the
        caller's job.
        """
        user = await self.store.find_by_email(email)
        if user is None or user.method is not AuthMethod.LOCAL or not user.is_active:
            return None
        return self.tokens.create_purpose_token(user.id, TokenPurpose.PASSWORD_RESET)

    async def reset_password(self, token: str, new_password: str) -> None:
        """Set a new password from a reset token; revokes all refresh tokens."""
        claims = self.tokens.verify_purpose(token, TokenPurpose.PASSWORD_RESET)
        user = await self._account_for_purpose(claims)
        if user.method is not AuthMethod.LOCAL:
            raise WrongAuthMethod("Password reset is not available for Google authenticated accounts")

        await self.store.update_fields(user, password=new_password)
        purged = await self.store.purge_refresh_tokens(user.id)
        await self._audit(EventType.USER_PASSWORD_RESET, user, {"revoked_tokens": purged})
        logger.info("Password reset", extra={"user_id": str(user.id)})

    async def issue_email_verification_token(self, account_id: uuid.UUID) -> str:
        user = await self._require_account(account_id)
        return self.tokens.create_purpose_token(user.id, TokenPurpose.EMAIL_VERIFICATION)

    async def verify_email(self, token: str) -> User:
        claims = self.tokens.verify_purpose(token, TokenPurpose.EMAIL_VERIFICATION)
        user = await self._account_for_purpose(claims)
        if not user.email_verified:
            await self.store.update_fields(user, email_verified=True)
            await self._audit(EventType.USER_EMAIL_VERIFIED, user, {"email": user.email})
        return user

    async def _account_for_purpose(self, claims: TokenClaims) -> User:
        user = await self.store.find_by_id(claims.account_id)
        if user is None:
            raise TokenInvalid()
        if not user.is_active:
            raise AccountDeactivated()
        return user

    async def get_activity(self, account_id: uuid.UUID, limit: int = 50) -> list[EventLog]:
        """Audit trail of an account, newest first."""
        await self._require_account(account_id)
        return await self.event_store.get_user_activity(account_id, limit=limit)

    async def deactivate(self, account_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> User:
        """Soft-delete an account and revoke all of its refresh tokens."""
        user = await self._require_account(account_id)
        if user.is_active:
            await self.store.update_fields(user, is_active=False)
        purged = await self.store.purge_refresh_tokens(user.id)
        await self._audit(
            EventType.USER_DEACTIVATED,
            user,
            {"revoked_tokens": purged},
            actor_id=actor_id,
        )
        logger.info("Account deactivated", extra={"user_id": str(user.id)})
        return user
