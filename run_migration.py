#!/usr/bin/env python3
"""
Run one employee id migration pass outside the server.
Usage: python run_migration.py
"""

import asyncio
import logging
import sys

from backoffice.fastapi.dependencies.database import init_db
from backoffice.fastapi.services.migration import IdentityMigrator
from backoffice.security.dependencies import get_store


async def run_migration():
    """Renumber every legacy employee id once and report the outcome."""
    await init_db()
    report = await IdentityMigrator(get_store()).run_once()

    if report.is_noop:
        print("No legacy employee ids found")
    for old_id, new_id in report.migrated:
        print(f"{old_id} -> {new_id}")
    if report.skipped:
        print(f"Skipped (claimed by another run): {', '.join(report.skipped)}")
    if report.error:
        print(f"Failed: {report.error}")
    return report.error is None


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    success = asyncio.run(run_migration())
    sys.exit(0 if success else 1)
