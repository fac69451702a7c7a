"""
Pre-persist pipeline for account writes.

An ordered list of steps runs over the field dict of every account create
or update before anything reaches the session. A step may normalize or
transform fields, or abort the write by raising ValidationFailed.
"""

from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from src.kernel.identity.errors import ValidationFailed
from src.kernel.identity.password import PasswordHasher
from src.kernel.models.user import AuthMethod, User

Fields = dict[str, Any]
PersistStep = Callable[[Fields, Optional[User]], Awaitable[None]]


async def normalize_identity(fields: Fields, existing: Optional[User]) -> None:
    """Lower-case email, trim username, store enum columns as plain values."""
    if "email" in fields:
        email = (fields["email"] or "").strip().lower()
        if not email:
            raise ValidationFailed("Email is required")
        fields["email"] = email
    if "username" in fields:
        username = (fields["username"] or "").strip()
        fields["username"] = username or None
    for key in ("auth_method", "role"):
        if isinstance(fields.get(key), Enum):
            fields[key] = fields[key].value


async def require_display_names(fields: Fields, existing: Optional[User]) -> None:
    """First and last name may be blank but never null."""
    for key in ("first_name", "last_name"):
        if key in fields and fields[key] is None:
            raise ValidationFailed(f"{key} must not be null")


async def enforce_method_requirements(fields: Fields, existing: Optional[User]) -> None:
    """
    Local accounts need a password; Google accounts need a subject id,
    never carry a password, and always have a verified email.
    """
    raw_method = fields.get("auth_method") or (existing.auth_method if existing else None)
    if raw_method is None:
        raise ValidationFailed("Authentication method is required")
    try:
        method = AuthMethod(raw_method)
    except ValueError:
        raise ValidationFailed(f"Unknown authentication method: {raw_method}")

    if method is AuthMethod.LOCAL:
        has_secret = bool(fields.get("password")) or bool(existing and existing.password_hash)
        if not has_secret:
            raise ValidationFailed("Password is required for local authentication")
    elif method is AuthMethod.GOOGLE:
        subject = fields.get("google_id") or (existing.google_id if existing else None)
        if not subject:
            raise ValidationFailed("Google ID is required for Google authentication")
        if fields.get("password"):
            raise ValidationFailed("Google accounts cannot have a password")
        fields["email_verified"] = True


class AccountPipeline:
    """Runs the persist steps in order; the last one hashes any new password."""

    def __init__(self, hasher: PasswordHasher, steps: Optional[list[PersistStep]] = None):
        self.hasher = hasher
        self.steps: list[PersistStep] = steps if steps is not None else [
            normalize_identity,
            require_display_names,
            enforce_method_requirements,
            self.hash_password,
        ]

    async def hash_password(self, fields: Fields, existing: Optional[User]) -> None:
        if "password" not in fields:
            return
        password = fields.pop("password")
        if not password:
            raise ValidationFailed("Password must not be empty")
        fields["password_hash"] = await self.hasher.hash_async(password)

    async def run(self, fields: Fields, existing: Optional[User] = None) -> Fields:
        """Return a processed copy of ``fields``; the input is left untouched."""
        processed = dict(fields)
        for step in self.steps:
            await step(processed, existing)
        return processed
