"""
Admin maintenance endpoints.
"""

import logging

from fastapi import APIRouter, Depends

from backoffice.fastapi.schemas.auth import MigrationReportRead
from backoffice.fastapi.services.migration import IdentityMigrator
from backoffice.security.dependencies import RequireAdmin, get_migrator

logger = logging.getLogger(__name__)

admin_router = APIRouter(tags=["admin"])


@admin_router.post("/migrations/employee-ids", response_model=MigrationReportRead,
                   summary="Run Employee Id Migration")
async def run_employee_id_migration(
    current_admin=RequireAdmin,
    migrator: IdentityMigrator = Depends(get_migrator),
):
    """
    Renumber legacy employee ids now instead of waiting for the next change.

    **Permissions:** Admin only

    **Returns:**
    - **migrated**: (old id, new id) pairs committed by this run
    - **skipped**: Records claimed by a concurrent run
    - **failed**: Records left on their legacy id after a commit failure
    """
    logger.info("Employee id migration requested by %s", current_admin.uid)
    report = await migrator.run_once()
    return MigrationReportRead(
        run_id=report.run_id,
        migrated=report.migrated,
        skipped=report.skipped,
        failed=report.failed,
        batches_committed=report.batches_committed,
        mutations_committed=report.mutations_committed,
        error=report.error,
    )
