"""Unit tests for password hashing."""

import pytest

from src.kernel.identity.password import BCRYPT_ROUNDS, PasswordHasher


class TestPasswordHasher:
    """Tests for PasswordHasher."""

    def test_hash_creates_different_hashes(self, hasher: PasswordHasher):
        """Same password should create different hashes (due to salt)."""
        password = "TestPassword123"
        hash1 = hasher.hash(password)
        hash2 = hasher.hash(password)

        assert hash1 != hash2
        assert hash1.startswith("$2b$04$")  # bcrypt prefix + work factor

    def test_verify_correct_password(self, hasher: PasswordHasher):
        """Correct password should verify successfully."""
        hashed = hasher.hash("TestPassword123")

        assert hasher.verify("TestPassword123", hashed) is True

    def test_verify_wrong_password(self, hasher: PasswordHasher):
        """Wrong password should fail verification."""
        hashed = hasher.hash("TestPassword123")

        assert hasher.verify("WrongPassword", hashed) is False

    def test_missing_or_malformed_hash_never_verifies(self, hasher: PasswordHasher):
        assert hasher.verify("anything", None) is False
        assert hasher.verify("anything", "") is False
        assert hasher.verify("anything", "not-a-bcrypt-hash") is False

    def test_long_passwords_truncated_to_72_bytes(self, hasher: PasswordHasher):
        """bcrypt ignores bytes past 72; hashing must not raise on them."""
        long_password = "a" * 100
        hashed = hasher.hash(long_password)

        assert hasher.verify("a" * 72, hashed) is True

    def test_needs_rehash(self, hasher: PasswordHasher):
        assert hasher.needs_rehash(hasher.hash("pw")) is False
        assert PasswordHasher(rounds=5).needs_rehash(hasher.hash("pw")) is True
        assert hasher.needs_rehash("garbage") is True

    def test_default_work_factor_is_production_floor(self):
        assert BCRYPT_ROUNDS >= 12
        assert PasswordHasher().rounds == BCRYPT_ROUNDS

    @pytest.mark.asyncio
    async def test_async_variants(self, hasher: PasswordHasher):
        hashed = await hasher.hash_async("AsyncPass1")

        assert await hasher.verify_async("AsyncPass1", hashed) is True
        assert await hasher.verify_async("nope", hashed) is False
