"""Unit tests for the credential verifier."""

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.kernel.identity.account_store import AccountStore
from src.kernel.identity.credentials import CredentialVerifier, IdentityClaim
from src.kernel.identity.errors import (
    EmailUnverified,
    InvalidAssertion,
    InvalidCredentials,
    WrongAuthMethod,
)
from src.kernel.identity.google import GoogleProfile
from src.kernel.identity.password import PasswordHasher
from src.kernel.models.user import AuthMethod


def _account(hasher, method="local", password="Abc123!!", active=True):
    return SimpleNamespace(
        id=uuid.uuid4(),
        email="a@x.com",
        username="alice",
        email_verified=False,
        auth_method=method,
        method=AuthMethod(method),
        password_hash=hasher.hash(password) if method == "local" else None,
        google_id="sub-1" if method == "google" else None,
        first_name="Alice",
        last_name="Liddell",
        avatar=None,
        is_active=active,
    )


@pytest.fixture
def store() -> MagicMock:
    store = MagicMock(spec=AccountStore)
    store.find_by_email_or_username = AsyncMock(return_value=None)
    return store


@pytest.fixture
def verifier(store, hasher, google_provider) -> CredentialVerifier:
    return CredentialVerifier(store, hasher, google_provider)


class TestVerifyPassword:
    """Tests for password verification."""

    @pytest.mark.asyncio
    async def test_correct_password_yields_claim(self, verifier, store, hasher):
        account = _account(hasher)
        store.find_by_email_or_username.return_value = account

        claim = await verifier.verify_password("alice", "Abc123!!")

        assert isinstance(claim, IdentityClaim)
        assert claim.account_id == account.id
        assert claim.method is AuthMethod.LOCAL
        assert claim.email == "a@x.com"

    @pytest.mark.asyncio
    async def test_current_hash_is_left_alone(self, verifier, store, hasher):
        store.find_by_email_or_username.return_value = _account(hasher)
        store.update_fields = AsyncMock()

        await verifier.verify_password("alice", "Abc123!!")

        store.update_fields.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_outdated_work_factor_is_rehashed(self, verifier, store, hasher):
        account = _account(PasswordHasher(rounds=hasher.rounds + 1))
        store.find_by_email_or_username.return_value = account
        store.update_fields = AsyncMock()

        await verifier.verify_password("alice", "Abc123!!")

        store.update_fields.assert_awaited_once_with(account, password="Abc123!!")

    @pytest.mark.asyncio
    async def test_unknown_identifier_still_spends_a_hash(self, verifier, hasher, monkeypatch):
        calls = []
        original = hasher.verify

        def counting_verify(plain, hashed):
            calls.append(hashed)
            return original(plain, hashed)

        monkeypatch.setattr(hasher, "verify", counting_verify)

        with pytest.raises(InvalidCredentials):
            await verifier.verify_password("nobody", "whatever")

        assert len(calls) == 1
        assert calls[0].startswith("$2b$")

    @pytest.mark.asyncio
    async def test_wrong_password(self, verifier, store, hasher):
        store.find_by_email_or_username.return_value = _account(hasher)

        with pytest.raises(InvalidCredentials):
            await verifier.verify_password("alice", "wrong")

    @pytest.mark.asyncio
    async def test_inactive_account_looks_like_bad_credentials(self, verifier, store, hasher):
        store.find_by_email_or_username.return_value = _account(hasher, active=False)

        with pytest.raises(InvalidCredentials) as exc_info:
            await verifier.verify_password("alice", "Abc123!!")

        assert exc_info.value.message == InvalidCredentials.default_message

    @pytest.mark.asyncio
    async def test_google_account_redirects_to_google(self, verifier, store, hasher):
        store.find_by_email_or_username.return_value = _account(hasher, method="google")

        with pytest.raises(WrongAuthMethod) as exc_info:
            await verifier.verify_password("a@x.com", "anything")

        assert "Google" in exc_info.value.message


class TestCheckSecret:
    """Tests for current-password checks."""

    @pytest.mark.asyncio
    async def test_matches_current_password(self, verifier, hasher):
        account = _account(hasher)

        assert await verifier.check_secret(account, "Abc123!!") is True
        assert await verifier.check_secret(account, "nope") is False

    @pytest.mark.asyncio
    async def test_google_account_has_no_secret(self, verifier, hasher):
        with pytest.raises(WrongAuthMethod):
            await verifier.check_secret(_account(hasher, method="google"), "x")


class TestFederated:
    """Tests for Google credential verification."""

    @pytest.mark.asyncio
    async def test_assertion_yields_google_claim(self, verifier, google_provider, google_profile):
        claim = await verifier.verify_federated_assertion("id-token")

        google_provider.verify_id_token.assert_awaited_once_with("id-token")
        assert claim.method is AuthMethod.GOOGLE
        assert claim.subject_id == google_profile.subject_id
        assert claim.email == google_profile.email
        assert claim.account_id is None

    @pytest.mark.asyncio
    async def test_code_yields_google_claim(self, verifier, google_provider):
        claim = await verifier.verify_authorization_code("code")

        google_provider.exchange_code.assert_awaited_once_with("code")
        assert claim.email_verified is True

    @pytest.mark.asyncio
    async def test_unverified_email_rejected(self, verifier, google_provider, google_profile):
        google_provider.verify_id_token.return_value = GoogleProfile(
            subject_id=google_profile.subject_id,
            email=google_profile.email,
            email_verified=False,
        )

        with pytest.raises(EmailUnverified):
            await verifier.verify_federated_assertion("id-token")

    @pytest.mark.asyncio
    async def test_provider_rejection_propagates(self, verifier, google_provider):
        google_provider.verify_id_token.side_effect = InvalidAssertion()

        with pytest.raises(InvalidAssertion):
            await verifier.verify_federated_assertion("bad")
