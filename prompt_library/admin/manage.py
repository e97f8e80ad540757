"""
Manage admin rights of users by email.

Usage:
    prompt-library-admin create <email> <username> <password>   # Create a superuser
    prompt-library-admin grant <email>                          # Grant admin rights
    prompt-library-admin revoke <email>                         # Revoke admin rights
    prompt-library-admin check <email>                          # Show user status
    prompt-library-admin list                                   # List all admins
"""
import asyncio
import sys
from typing import Optional

from sqlalchemy import select

from prompt_library.core import database
from prompt_library.core.security import get_password_hash
from prompt_library.models.user import User


async def _find_user(session, email: str) -> Optional[User]:
    result = await session.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def create_admin(email: str, username: str, password: str) -> bool:
    """Create a new superuser; fails if the email is taken."""
    async with database.AsyncSessionLocal() as session:
        if await _find_user(session, email):
            print(f"User {email} already exists, use 'grant' instead")
            return False

        user = User(
            email=email,
            username=username,
            hashed_password=get_password_hash(password),
            is_superuser=True,
            is_active=True,
        )
        session.add(user)
        try:
            await session.commit()
        except Exception as e:
            await session.rollback()
            print(f"Error creating admin: {e}")
            return False

        print(f"Admin user created: {email} (id {user.id})")
        return True


async def set_admin(email: str, is_superuser: bool) -> bool:
    """
    Grant or revoke admin rights.

    Returns:
        bool: True on success, False if the user does not exist
    """
    async with database.AsyncSessionLocal() as session:
        user = await _find_user(session, email)
        if not user:
            print(f"User {email} not found")
            return False

        if user.is_superuser == is_superuser:
            print(f"User {email} already {'is' if is_superuser else 'is not'} an admin")
            return True

        user.is_superuser = is_superuser
        try:
            await session.commit()
        except Exception as e:
            await session.rollback()
            print(f"Error updating admin rights: {e}")
            return False

        print(f"Admin rights {'granted to' if is_superuser else 'revoked from'} {email}")
        return True


async def check_admin(email: str) -> bool:
    async with database.AsyncSessionLocal() as session:
        user = await _find_user(session, email)
        if not user:
            print(f"User {email} not found")
            return False

        print(f"Email: {user.email}")
        print(f"Username: {user.username or 'N/A'}")
        print(f"Active: {'yes' if user.is_active else 'no'}")
        print(f"Admin: {'yes' if user.is_superuser else 'no'}")
        print(f"Created: {user.created_at.strftime('%Y-%m-%d %H:%M:%S')}")
        return True


async def list_admins() -> bool:
    async with database.AsyncSessionLocal() as session:
        result = await session.execute(
            select(User).where(User.is_superuser.is_(True)).order_by(User.created_at)
        )
        admins = result.scalars().all()

    if not admins:
        print("No admins found")
        return True

    print(f"Admins ({len(admins)}):")
    for i, admin in enumerate(admins, 1):
        status = "active" if admin.is_active else "inactive"
        print(f"{i}. {admin.email} ({admin.username or 'N/A'}, {status})")
    return True


async def run(argv: list[str]) -> int:
    """Dispatch a command; returns the process exit code."""
    if not argv:
        print(__doc__)
        return 1

    command, args = argv[0].lower(), argv[1:]
    expected = {"create": 3, "grant": 1, "revoke": 1, "check": 1, "list": 0}
    if command not in expected:
        print(f"Unknown command: {command}")
        print(__doc__)
        return 1
    if len(args) != expected[command]:
        print(__doc__)
        return 1

    try:
        if command == "create":
            success = await create_admin(*args)
        elif command == "grant":
            success = await set_admin(args[0], True)
        elif command == "revoke":
            success = await set_admin(args[0], False)
        elif command == "check":
            success = await check_admin(args[0])
        else:
            success = await list_admins()
    finally:
        await database.engine.dispose()

    return 0 if success else 1


def main() -> None:
    sys.exit(asyncio.run(run(sys.argv[1:])))


if __name__ == "__main__":
    main()
