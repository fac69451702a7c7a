"""
Create an admin account, or promote an existing one.

Usage:
    python scripts/create_admin.py admin@example.com 'S3cretPass' --username admin
"""

import argparse
import asyncio
import sys

sys.path.insert(0, ".")

from src.config import get_auth_config
from src.database import async_session_maker, close_db, init_db
from src.kernel.identity.account_pipeline import AccountPipeline
from src.kernel.identity.account_store import AccountStore
from src.kernel.identity.errors import AuthError
from src.kernel.identity.password import PasswordHasher
from src.kernel.models.user import AuthMethod, UserRole


async def create_admin(email: str, password: str, username: str | None, first_name: str, last_name: str) -> str:
    config = get_auth_config()
    async with async_session_maker() as session:
        store = AccountStore(session, config, AccountPipeline(PasswordHasher(config.bcrypt_rounds)))
        user = await store.find_by_email(email)
        if user is None:
            user = await store.create(
                email=email,
                username=username,
                password=password,
                first_name=first_name,
                last_name=last_name,
                role=UserRole.ADMIN,
                auth_method=AuthMethod.LOCAL,
                is_active=True,
                email_verified=True,
            )
            action = "Created"
        else:
            await store.update_fields(user, role=UserRole.ADMIN, is_active=True)
            action = "Promoted"
        await session.commit()
        return f"{action} admin {user.email} ({user.id})"


async def main() -> int:
    parser = argparse.ArgumentParser(description="Create or promote an admin account")
    parser.add_argument("email")
    parser.add_argument("password")
    parser.add_argument("--username", default=None)
    parser.add_argument("--first-name", default="Admin")
    parser.add_argument("--last-name", default="User")
    args = parser.parse_args()

    await init_db()
    try:
        print(await create_admin(args.email, args.password, args.username, args.first_name, args.last_name))
    except AuthError as e:
        print(f"Failed: {e.message}", file=sys.stderr)
        return 1
    finally:
        await close_db()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
