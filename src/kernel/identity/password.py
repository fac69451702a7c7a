"""
Password hashing utilities using bcrypt.
"""

import asyncio

import bcrypt

# Work factor for bcrypt hashing (12 is the production floor)
BCRYPT_ROUNDS = 12


class PasswordHasher:
    """
    Salted bcrypt hashing with a fixed work factor.

    bcrypt is deliberately slow, so the async variants push the work onto a
    worker thread instead of stalling the event loop.
    """

    def __init__(self, rounds: int = BCRYPT_ROUNDS):
        self.rounds = rounds

    @staticmethod
    def _truncate_password(password: str) -> bytes:
        """
        Truncate password to 72 bytes (bcrypt limit) and encode.

        bcrypt only uses the first 72 bytes of a password.
        """
        return password.encode("utf-8")[:72]

    def hash(self, password: str) -> str:
        """
        Hash a password using bcrypt.

        Args:
            password: Plain text password

        Returns:
            Hashed password string
        """
        salt = bcrypt.gensalt(rounds=self.rounds)
        hashed = bcrypt.hashpw(self._truncate_password(password), salt)
        return hashed.decode("utf-8")

    def verify(self, plain_password: str, hashed_password: str | None) -> bool:
        """
        Verify a password against its hash.

        bcrypt.checkpw compares digests in constant time. A missing or
        malformed stored hash never verifies.
        """
        if not hashed_password:
            return False
        try:
            return bcrypt.checkpw(
                self._truncate_password(plain_password),
                hashed_password.encode("utf-8"),
            )
        except ValueError:
            return False

    def needs_rehash(self, hashed_password: str) -> bool:
        """
        Check if a password hash was produced with a different work factor.

        bcrypt hashes look like $2b$XX$..., where XX is the rounds.
        """
        parts = hashed_password.split("$")
        if len(parts) < 3 or not parts[2].isdigit():
            return True
        return int(parts[2]) != self.rounds

    async def hash_async(self, password: str) -> str:
        return await asyncio.to_thread(self.hash, password)

    async def verify_async(self, plain_password: str, hashed_password: str | None) -> bool:
        return await asyncio.to_thread(self.verify, plain_password, hashed_password)
