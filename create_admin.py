# create_admin.py
"""Create the first staff account. The API has no self-registration."""
import argparse
import asyncio
from getpass import getpass
from typing import Optional

from library_booking.core.security import get_password_hash
from library_booking.db.database import init_db
from library_booking.models.user import User, UserRole


async def create_account(username: str, password: str, role: UserRole, email: Optional[str] = None) -> bool:
    client = await init_db()
    try:
        if await User.find_one(User.username == username):
            print(f"Error: Username '{username}' already exists.")
            return False
        user = User(
            username=username,
            email=email,
            hashed_password=get_password_hash(password),
            role=role,
            disabled=False,
        )
        await user.insert()
        print(f"{role.value.capitalize()} user '{username}' created with id {user.id}.")
        return True
    finally:
        client.close()


def main():
    parser = argparse.ArgumentParser(description="Create a library booking account")
    parser.add_argument("username")
    parser.add_argument("--email", default=None)
    parser.add_argument("--role", choices=[r.value for r in UserRole], default=UserRole.ADMIN.value)
    args = parser.parse_args()

    password = getpass("Password: ")
    if len(password) < 8:
        parser.error("Password must be at least 8 characters long.")
    if password != getpass("Confirm password: "):
        parser.error("Passwords do not match.")

    created = asyncio.run(create_account(args.username, password, UserRole(args.role), args.email))
    raise SystemExit(0 if created else 1)


if __name__ == "__main__":
    main()
