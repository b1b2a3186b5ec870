"""
Create an Admin staff login.

Usage: python create_admin.py <email> <password> [display name]
"""

import asyncio
import logging
import sys

from backoffice.fastapi.crud.directory import BatchCommitError
from backoffice.fastapi.dependencies.database import init_db
from backoffice.fastapi.schemas.directory import USERS, UserRole
from backoffice.fastapi.services.employees import create_staff_user
from backoffice.security.dependencies import get_store

logger = logging.getLogger("create_admin")


async def create_initial_admin(email: str, password: str, display_name: str = "Administrator"):
    """Create an Admin login unless one with this email already exists."""
    await init_db()
    store = get_store()

    if await store.query_equals(USERS, [("email", email)]):
        logger.error("A staff user with email %s already exists", email)
        return None

    try:
        admin = await create_staff_user(store, email, password, UserRole.ADMIN, display_name)
    except BatchCommitError as e:
        logger.error("Error creating admin user: %s", e)
        return None

    logger.info("Created admin user %s (uid %s)", admin.email, admin.uid)
    logger.info("Login: POST http://localhost:8000/api/v1/auth/login")
    return admin


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    if len(sys.argv) < 3:
        print("Usage: python create_admin.py <email> <password> [display name]")
        sys.exit(1)

    admin = asyncio.run(create_initial_admin(*sys.argv[1:4]))
    sys.exit(0 if admin else 1)
