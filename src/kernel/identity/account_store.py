"""
Identity store: persistence operations the session core needs.

Backed by an AsyncSession whose transaction is owned by the caller. Every
write here is flushed but not committed, so a multi-step mutation such as
refresh-token rotation commits or rolls back as one unit.
"""

import uuid
from contextlib import contextmanager
from datetime import timedelta
from typing import Any, Iterator, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import AuthConfig
from src.kernel.identity.account_pipeline import AccountPipeline
from src.kernel.identity.errors import (
    AuthError,
    DuplicateEmail,
    DuplicateFederatedSubject,
    DuplicateUsername,
    Internal,
)
from src.kernel.identity.jwt import JWTManager
from src.kernel.models.base import utcnow
from src.kernel.models.user import RefreshTokenReference, User
from src.logging_config import get_logger

logger = get_logger(__name__)


class AccountStore:
    """
    Account lookups, pipeline-checked writes, and refresh-token references.

    "Not found" is always a None return; storage failures raise Internal.
    """

    def __init__(self, session: AsyncSession, config: AuthConfig, pipeline: AccountPipeline):
        self.session = session
        self.config = config
        self.pipeline = pipeline

    @property
    def reference_lifetime(self) -> timedelta:
        return timedelta(days=self.config.refresh_token_expire_days)

    @contextmanager
    def _storage_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except IntegrityError:
            raise
        except SQLAlchemyError:
            logger.exception("Identity store failure", extra={"operation": operation})
            raise Internal()

    async def commit(self) -> None:
        """
        Make the caller's unit of work durable.

        Any failure, integrity violations included, rolls everything back
        and raises Internal; nothing of the unit is left applied.
        """
        try:
            await self.session.commit()
        except SQLAlchemyError:
            logger.exception("Identity store failure", extra={"operation": "commit"})
            await self.session.rollback()
            raise Internal()

    # Lookups

    async def _first(self, query) -> Optional[User]:
        with self._storage_errors("lookup"):
            result = await self.session.execute(query)
            return result.scalar_one_or_none()

    async def find_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        with self._storage_errors("lookup"):
            return await self.session.get(User, user_id)

    async def find_by_email(self, email: str) -> Optional[User]:
        return await self._first(select(User).where(User.email == email.strip().lower()))

    async def find_by_username(self, username: str) -> Optional[User]:
        return await self._first(select(User).where(User.username == username.strip()))

    async def find_by_email_or_username(self, identifier: str) -> Optional[User]:
        identifier = identifier.strip()
        return await self._first(
            select(User).where(
                or_(User.email == identifier.lower(), User.username == identifier)
            ).limit(1)
        )

    async def find_by_google_id(self, google_id: str) -> Optional[User]:
        return await self._first(select(User).where(User.google_id == google_id))

    # Writes

    async def _classify_conflict(self, fields: dict[str, Any]) -> AuthError:
        """
        Work out which unique constraint an insert/update collided with.

        A violation that matches no unique key (NOT NULL, foreign key) is
        not a duplicate and surfaces as Internal.
        """
        if fields.get("email") and await self.find_by_email(fields["email"]):
            return DuplicateEmail()
        if fields.get("username") and await self.find_by_username(fields["username"]):
            return DuplicateUsername()
        if fields.get("google_id") and await self.find_by_google_id(fields["google_id"]):
            return DuplicateFederatedSubject()
        logger.error("Integrity violation on non-unique column", extra={"fields": sorted(fields)})
        return Internal()

    async def create(self, **fields: Any) -> User:
        """
        Insert a new account after running the persist pipeline.

        A uniqueness violation rolls the transaction back (the insert is the
        first write of every unit of work that creates an account) and is
        reported as the matching DuplicateAccount subclass.
        """
        values = await self.pipeline.run(fields)
        user = User(**values)
        with self._storage_errors("create"):
            try:
                self.session.add(user)
                await self.session.flush()
            except IntegrityError:
                await self.session.rollback()
                raise await self._classify_conflict(values)
        return user

    async def update_fields(self, user: User, **fields: Any) -> User:
        """Apply a field patch to an existing account through the pipeline."""
        values = await self.pipeline.run(fields, existing=user)
        for key, value in values.items():
            setattr(user, key, value)
        with self._storage_errors("update"):
            try:
                await self.session.flush()
            except IntegrityError:
                await self.session.rollback()
                raise await self._classify_conflict(values)
        return user

    # Refresh-token references

    async def append_refresh_token(self, user_id: uuid.UUID, token: str) -> None:
        """
        Store a reference to ``token``, keeping only the newest N per account.

        References older than the refresh lifetime are purged first.
        """
        cutoff = utcnow() - self.reference_lifetime
        with self._storage_errors("append_refresh_token"):
            await self.session.execute(
                delete(RefreshTokenReference).where(
                    RefreshTokenReference.user_id == user_id,
                    RefreshTokenReference.created_at < cutoff,
                ).execution_options(synchronize_session=False)
            )
            self.session.add(
                RefreshTokenReference(
                    user_id=user_id,
                    token_hash=JWTManager.hash_token(token),
                    created_at=utcnow(),
                )
            )
            await self.session.flush()

            overflow = await self.session.execute(
                select(RefreshTokenReference.id)
                .where(RefreshTokenReference.user_id == user_id)
                .order_by(RefreshTokenReference.created_at.desc())
                .offset(self.config.max_refresh_tokens)
            )
            evicted = list(overflow.scalars().all())
            if evicted:
                await self.session.execute(
                    delete(RefreshTokenReference)
                    .where(RefreshTokenReference.id.in_(evicted))
                    .execution_options(synchronize_session=False)
                )

    async def remove_refresh_token(self, user_id: uuid.UUID, token: str) -> bool:
        """
        Delete the reference for ``token`` held by ``user_id``.

        Returns whether a row was deleted. The single DELETE is the
        compare-and-swap: of two callers racing on the same token, only one
        sees a deleted row.
        """
        with self._storage_errors("remove_refresh_token"):
            result = await self.session.execute(
                delete(RefreshTokenReference).where(
                    RefreshTokenReference.user_id == user_id,
                    RefreshTokenReference.token_hash == JWTManager.hash_token(token),
                ).execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    async def rotate_refresh_token(self, user_id: uuid.UUID, old_token: str, new_token: str) -> bool:
        """Swap ``old_token`` for ``new_token``; False if the old one was already gone."""
        if not await self.remove_refresh_token(user_id, old_token):
            return False
        await self.append_refresh_token(user_id, new_token)
        return True

    async def find_by_refresh_token(self, token: str) -> Optional[User]:
        """Account holding an unexpired reference to ``token``."""
        cutoff = utcnow() - self.reference_lifetime
        return await self._first(
            select(User)
            .join(RefreshTokenReference, RefreshTokenReference.user_id == User.id)
            .where(
                RefreshTokenReference.token_hash == JWTManager.hash_token(token),
                RefreshTokenReference.created_at >= cutoff,
            )
        )

    async def purge_refresh_tokens(self, user_id: uuid.UUID) -> int:
        """Drop every reference an account holds; returns how many were removed."""
        with self._storage_errors("purge_refresh_tokens"):
            result = await self.session.execute(
                delete(RefreshTokenReference)
                .where(RefreshTokenReference.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount or 0

    async def count_refresh_tokens(self, user_id: uuid.UUID) -> int:
        with self._storage_errors("count_refresh_tokens"):
            result = await self.session.execute(
                select(func.count(RefreshTokenReference.id)).where(
                    RefreshTokenReference.user_id == user_id
                )
            )
        return result.scalar() or 0
