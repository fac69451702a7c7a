"""Unit tests for the token engine."""

import dataclasses
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from src.config import AuthConfig
from src.kernel.identity.errors import TokenExpired, TokenInvalid, WrongPurpose
from src.kernel.identity.jwt import (
    JWTManager,
    TokenPurpose,
    TokenType,
    extract_bearer_token,
)


class FrozenClock:
    """Settable clock so expiry can be tested without sleeping."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def tokens(auth_config: AuthConfig, clock: FrozenClock) -> JWTManager:
    return JWTManager(auth_config, clock=clock)


@pytest.fixture
def account_id() -> uuid.UUID:
    return uuid.uuid4()


class TestMinting:
    """Tests for token creation."""

    def test_mint_pair_verifies(self, tokens: JWTManager, account_id):
        pair = tokens.mint(account_id)

        assert pair.token_type == "bearer"
        assert pair.expires_in == 15 * 60
        assert tokens.verify_access(pair.access_token).account_id == account_id
        assert tokens.verify_refresh(pair.refresh_token).account_id == account_id

    def test_claims_carry_issuer_audience_and_type(self, tokens: JWTManager, account_id):
        claims = tokens.verify_access(tokens.create_access_token(account_id))

        assert claims.iss == "auth-service"
        assert claims.aud == "web-app"
        assert claims.type is TokenType.ACCESS
        assert claims.exp - claims.iat == 15 * 60

    def test_tokens_minted_in_same_second_differ(self, tokens: JWTManager, account_id):
        first = tokens.create_refresh_token(account_id)
        second = tokens.create_refresh_token(account_id)

        assert first != second

    def test_hash_token_is_stable_sha256(self):
        digest = JWTManager.hash_token("abc")

        assert digest == JWTManager.hash_token("abc")
        assert len(digest) == 64
        assert digest != "abc"


class TestVerification:
    """Tests for verification failures and their classification."""

    def test_access_and_refresh_secrets_are_not_interchangeable(self, tokens: JWTManager, account_id):
        pair = tokens.mint(account_id)

        with pytest.raises(TokenInvalid):
            tokens.verify_refresh(pair.access_token)
        with pytest.raises(TokenInvalid):
            tokens.verify_access(pair.refresh_token)

    def test_wrong_secret_rejected(self, auth_config: AuthConfig, tokens: JWTManager, account_id):
        other = JWTManager(
            dataclasses.replace(
                auth_config,
                access_secret="some-other-access-secret",
                refresh_secret="some-other-refresh-secret",
            )
        )

        with pytest.raises(TokenInvalid):
            tokens.verify_access(other.create_access_token(account_id))

    @pytest.mark.parametrize("field,value", [("issuer", "someone-else"), ("audience", "mobile-app")])
    def test_mismatched_issuer_or_audience_rejected(
        self, auth_config: AuthConfig, tokens: JWTManager, account_id, field, value
    ):
        foreign = JWTManager(dataclasses.replace(auth_config, **{field: value}))

        with pytest.raises(TokenInvalid):
            tokens.verify_access(foreign.create_access_token(account_id))

    def test_expired_token_classified_as_expired(self, tokens: JWTManager, clock: FrozenClock, account_id):
        token = tokens.create_access_token(account_id)
        clock.advance(minutes=14, seconds=59)
        tokens.verify_access(token)

        clock.advance(seconds=1)
        with pytest.raises(TokenExpired):
            tokens.verify_access(token)

    def test_refresh_token_expires_after_seven_days(self, tokens: JWTManager, clock: FrozenClock, account_id):
        token = tokens.create_refresh_token(account_id)
        clock.advance(days=7)

        with pytest.raises(TokenExpired):
            tokens.verify_refresh(token)

    def test_expired_and_forged_is_invalid_not_expired(self, auth_config, tokens, clock, account_id):
        """Expired is only reported for tokens whose sole defect is age."""
        forger = JWTManager(
            dataclasses.replace(auth_config, access_secret="forged-access-secret"),
            clock=clock,
        )
        token = forger.create_access_token(account_id)
        clock.advance(days=1)

        with pytest.raises(TokenInvalid):
            tokens.verify_access(token)

    @pytest.mark.parametrize(
        "garbage",
        ["", "not.a.jwt", "a.b.c", "eyJhbGciOiJIUzI1NiJ9..", None, 42, b"bytes"],
    )
    def test_malformed_input_is_typed_failure(self, tokens: JWTManager, garbage):
        with pytest.raises(TokenInvalid):
            tokens.verify_access(garbage)
        with pytest.raises(TokenInvalid):
            tokens.verify_refresh(garbage)

    def test_missing_claims_rejected(self, auth_config: AuthConfig, tokens: JWTManager):
        token = jwt.encode(
            {"sub": str(uuid.uuid4()), "iss": "auth-service", "aud": "web-app", "type": "access"},
            auth_config.access_secret,
            algorithm="HS256",
        )

        with pytest.raises(TokenInvalid):
            tokens.verify_access(token)

    def test_non_uuid_subject_rejected(self, auth_config: AuthConfig, tokens: JWTManager, clock):
        now = int(clock().timestamp())
        token = jwt.encode(
            {
                "sub": "not-a-uuid",
                "iss": "auth-service",
                "aud": "web-app",
                "iat": now,
                "exp": now + 60,
                "jti": "x",
                "type": "access",
            },
            auth_config.access_secret,
            algorithm="HS256",
        )

        with pytest.raises(TokenInvalid):
            tokens.verify_access(token)

    def test_alg_none_rejected(self, tokens: JWTManager, account_id):
        claims = jwt.get_unverified_claims(tokens.create_access_token(account_id))
        header = "eyJhbGciOiJub25lIiwidHlwIjoiSldUIn0"  # {"alg":"none","typ":"JWT"}
        payload = jwt.encode(claims, "x", algorithm="HS256").split(".")[1]

        with pytest.raises(TokenInvalid):
            tokens.verify_access(f"{header}.{payload}.")


class TestPurposeTokens:
    """Tests for password-reset and email-verification tokens."""

    def test_purpose_round_trip(self, tokens: JWTManager, account_id):
        token = tokens.create_purpose_token(account_id, TokenPurpose.PASSWORD_RESET)
        claims = tokens.verify_purpose(token, TokenPurpose.PASSWORD_RESET)

        assert claims.purpose is TokenPurpose.PASSWORD_RESET
        assert claims.account_id == account_id

    def test_wrong_purpose_rejected(self, tokens: JWTManager, account_id):
        token = tokens.create_purpose_token(account_id, TokenPurpose.EMAIL_VERIFICATION)

        with pytest.raises(WrongPurpose):
            tokens.verify_purpose(token, TokenPurpose.PASSWORD_RESET)

    def test_purpose_token_is_not_an_access_token(self, tokens: JWTManager, account_id):
        token = tokens.create_purpose_token(account_id, TokenPurpose.PASSWORD_RESET)

        with pytest.raises(TokenInvalid):
            tokens.verify_access(token)
        with pytest.raises(TokenInvalid):
            tokens.verify_purpose(tokens.create_access_token(account_id), TokenPurpose.PASSWORD_RESET)

    @pytest.mark.parametrize(
        "purpose,lifetime",
        [(TokenPurpose.PASSWORD_RESET, timedelta(hours=1)), (TokenPurpose.EMAIL_VERIFICATION, timedelta(hours=24))],
    )
    def test_purpose_specific_expiry(self, tokens, clock, account_id, purpose, lifetime):
        token = tokens.create_purpose_token(account_id, purpose)
        clock.advance(seconds=lifetime.total_seconds() - 1)
        tokens.verify_purpose(token, purpose)

        clock.advance(seconds=1)
        with pytest.raises(TokenExpired):
            tokens.verify_purpose(token, purpose)


class TestConfig:
    """Tests for AuthConfig guards."""

    def test_equal_secrets_rejected(self):
        with pytest.raises(ValueError):
            AuthConfig(access_secret="same", refresh_secret="same")

    def test_empty_secret_rejected(self):
        with pytest.raises(ValueError):
            AuthConfig(access_secret="", refresh_secret="x")


class TestBearerExtraction:
    """Tests for extract_bearer_token."""

    def test_extracts_token(self):
        assert extract_bearer_token("Bearer abc.def.ghi") == "abc.def.ghi"
        assert extract_bearer_token("bearer   abc") == "abc"

    @pytest.mark.parametrize("header", [None, "", "Bearer", "Bearer ", "Basic dXNlcjpwdw==", "abc"])
    def test_rejects_missing_or_other_schemes(self, header):
        with pytest.raises(TokenInvalid):
            extract_bearer_token(header)
