"""
Script to create (or promote) a platform super-admin for local testing.

Usage:
    python -m booking_core.scripts.create_local_admin --email admin@example.com
"""

import argparse
import asyncio

from sqlmodel import select

from booking_core.core.auth import create_jwt
from booking_core.core.database import get_session_context
from booking_core.models.user import User


async def create_super_admin(email: str, display_name: str) -> User:
    async with get_session_context() as session:
        result = await session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if user is None:
            user = User(email=email, display_name=display_name, is_super_admin=True)
            session.add(user)
            print(f"Created super-admin: {email}")
        elif not user.is_super_admin:
            user.is_super_admin = True
            session.add(user)
            print(f"Promoted {email} to super-admin.")
        else:
            print(f"User {email} is already a super-admin.")

        await session.flush()
        return user


def main():
    parser = argparse.ArgumentParser(description="Create a local super-admin user.")
    parser.add_argument("--email", required=True, help="User email")
    parser.add_argument("--name", default="Local Admin", help="Display name")
    args = parser.parse_args()

    user = asyncio.run(create_super_admin(args.email, args.name))
    token, _ = create_jwt(user.id)
    print(f"User id: {user.id}")
    print(f"Bearer token: {token}")


if __name__ == "__main__":
    main()
