import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from backoffice.fastapi.core.init_settings import global_settings
from backoffice.fastapi.dependencies.database import init_db
from backoffice.fastapi.schemas.directory import EMPLOYEES, USERS, UserRole
from backoffice.fastapi.services.employees import create_staff_user
from backoffice.fastapi.services.migration import IdentityMigrator
from backoffice.security.dependencies import get_store

logger = logging.getLogger(__name__)


async def bootstrap_admin(store) -> None:
    """Create the first Admin staff login when ``users`` is empty."""
    if await store.list_all(USERS):
        return

    admin = await create_staff_user(
        store,
        email=global_settings.INITIAL_ADMIN_EMAIL,
        password=global_settings.INITIAL_ADMIN_PASSWORD,
        role=UserRole.ADMIN,
        display_name="Administrator",
    )
    logger.warning(
        "Created initial admin user %s with the configured default password; change it after first login",
        admin.email,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Initialize the database tables
    await init_db()

    store = get_store()
    await bootstrap_admin(store)

    watcher = None
    if global_settings.MIGRATOR_ENABLED:
        app.state.migrator = IdentityMigrator(store)
        watcher = asyncio.create_task(app.state.migrator.watch_employees())
        logger.info("Employee id migrator watching %s", EMPLOYEES)

    yield

    if watcher is not None:
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher
