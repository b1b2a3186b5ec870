"""
Employee id migration.

Employees created before the current numbering scheme carry legacy ids.
The migrator renumbers each of them into the current namespace and
rewrites every staff user and payroll record that references the old id,
so the cross-collection references stay intact.

Runs are triggered by every change notification on the employee
collection and are safe to repeat: only records still matching the
legacy pattern are processed, so a failed run is simply retried by the
next notification.
"""

import asyncio
import logging
import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError

from backoffice.fastapi.core.init_settings import global_settings
from backoffice.fastapi.crud.directory import (
    BatchCommitError, Create, Delete, DirectoryStore, Mutation, Update,
)
from backoffice.fastapi.schemas.directory import (
    EMPLOYEES, MIGRATION_CLAIMS, PAYROLL_RECORDS, USERS, MigrationClaim,
)
from backoffice.security.errors import MigrationWriteFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmployeeIdScheme:
    """
    The two employee id namespaces.

    Legacy ids match ``legacy_pattern``. Current ids are
    ``current_prefix`` followed by a number, ``base_offset + counter``.
    """

    current_prefix: str = "91"
    legacy_pattern: str = r"^\d{4}$"
    base_offset: int = 1000

    @classmethod
    def from_settings(cls) -> "EmployeeIdScheme":
        return cls(
            current_prefix=global_settings.EMPLOYEE_ID_CURRENT_PREFIX,
            legacy_pattern=global_settings.EMPLOYEE_ID_LEGACY_PATTERN,
            base_offset=global_settings.EMPLOYEE_ID_BASE_OFFSET,
        )

    def is_legacy(self, employee_id: str) -> bool:
        return re.fullmatch(self.legacy_pattern, employee_id) is not None

    def current_suffix(self, employee_id: str) -> Optional[int]:
        """Numeric suffix of a current-namespace id, or None for any other id."""
        if self.is_legacy(employee_id) or not employee_id.startswith(self.current_prefix):
            return None
        suffix = employee_id[len(self.current_prefix):]
        return int(suffix) if suffix.isdigit() else None

    def format(self, counter: int) -> str:
        return f"{self.current_prefix}{self.base_offset + counter}"


def starting_counter(existing_ids: Iterable[str], scheme: EmployeeIdScheme) -> int:
    """
    First counter value that cannot reuse a suffix issued before.

    1 when no current-namespace id exists yet, otherwise one past the
    largest suffix in use.
    """
    suffixes = [s for s in (scheme.current_suffix(i) for i in existing_ids) if s is not None]
    if not suffixes:
        return 1
    return max(suffixes) - scheme.base_offset + 1


def stable_order(employee_ids: Iterable[str]) -> List[str]:
    """Numeric order for digit-only ids, lexical order between equal lengths."""
    return sorted(employee_ids, key=lambda i: (len(i), i))


def assign_employee_ids(
    legacy_ids: Iterable[str],
    existing_ids: Iterable[str],
    scheme: EmployeeIdScheme,
    reserved: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """
    Map each legacy id to a new current-namespace id.

    Args:
        legacy_ids: Ids to renumber
        existing_ids: Every employee id currently stored
        scheme: Namespace definition
        reserved: Ids already assigned by an earlier, partially applied run

    Returns:
        Dict of old id -> new id, in processing order
    """
    reserved = dict(reserved or {})
    taken: Set[str] = set(existing_ids) | set(reserved.values())
    counter = starting_counter(taken, scheme)

    assignment: Dict[str, str] = {}
    for old_id in stable_order(legacy_ids):
        if old_id in reserved:
            assignment[old_id] = reserved[old_id]
            continue
        candidate = scheme.format(counter)
        counter += 1
        while candidate in taken:
            candidate = scheme.format(counter)
            counter += 1
        taken.add(candidate)
        assignment[old_id] = candidate
    return assignment


@dataclass(frozen=True)
class EmployeeRenumbering:
    old_id: str
    new_id: str
    # The new record already exists from an earlier run that was cut short
    resumed: bool = False


@dataclass(frozen=True)
class MigrationCommand:
    """The renumberings one migrator run will apply, in order."""

    renumberings: Tuple[EmployeeRenumbering, ...] = ()

    @property
    def is_noop(self) -> bool:
        return not self.renumberings

    @classmethod
    def plan(
        cls,
        legacy_ids: Iterable[str],
        existing_ids: Iterable[str],
        scheme: EmployeeIdScheme,
        reserved: Optional[Mapping[str, str]] = None,
    ) -> "MigrationCommand":
        existing = set(existing_ids)
        assignment = assign_employee_ids(legacy_ids, existing, scheme, reserved)
        return cls(tuple(
            EmployeeRenumbering(old_id, new_id, resumed=new_id in existing)
            for old_id, new_id in assignment.items()
        ))


def build_mutation_group(
    renumbering: EmployeeRenumbering,
    employee: Mapping,
    staff_users: Sequence[Mapping],
    payroll_records: Sequence[Mapping],
) -> List[Mutation]:
    """
    Every write needed to move one employee to its new id.

    The new employee record comes first and the deletes of the claim and
    the old employee record come last, so if the group has to be split
    across batches the legacy record survives until everything else has
    been committed.
    """
    old_id, new_id = renumbering.old_id, renumbering.new_id
    new_record = {**employee, "id": new_id}

    mutations: List[Mutation] = [
        Update(EMPLOYEES, new_id, new_record) if renumbering.resumed else Create(EMPLOYEES, new_id, new_record)
    ]
    for user in staff_users:
        mutations.append(Update(USERS, user["uid"], {
            "employeeId": new_id,
            "email": new_id,
            "password": new_id,
        }))
    for record in payroll_records:
        mutations.append(Update(PAYROLL_RECORDS, record["id"], {"employeeId": new_id}))

    mutations.append(Delete(MIGRATION_CLAIMS, old_id))
    mutations.append(Delete(EMPLOYEES, old_id))
    return mutations


@dataclass
class MigrationBatch:
    mutations: List[Mutation] = field(default_factory=list)
    # Renumberings whose final mutation is in this batch
    completes: List[EmployeeRenumbering] = field(default_factory=list)


def chunk_groups(
    groups: Sequence[Tuple[EmployeeRenumbering, List[Mutation]]],
    limit: int,
) -> List[MigrationBatch]:
    """
    Pack mutation groups into batches of at most ``limit`` mutations.

    A group is kept whole inside one batch; only a group larger than the
    limit on its own is split, in order, over consecutive batches. Split
    groups are cut from the end, so the last chunk is full and the closing
    claim and employee deletes always land in it together.
    """
    if limit < 1:
        raise ValueError("batch limit must be positive")

    batches: List[MigrationBatch] = []
    current = MigrationBatch()
    for renumbering, mutations in groups:
        if len(mutations) > limit:
            if current.mutations:
                batches.append(current)
                current = MigrationBatch()
            chunks = [mutations[max(0, end - limit):end] for end in range(len(mutations), 0, -limit)]
            chunks.reverse()
            for chunk in chunks[:-1]:
                batches.append(MigrationBatch(list(chunk)))
            batches.append(MigrationBatch(list(chunks[-1]), [renumbering]))
            continue

        if len(current.mutations) + len(mutations) > limit:
            batches.append(current)
            current = MigrationBatch()
        current.mutations.extend(mutations)
        current.completes.append(renumbering)

    if current.mutations:
        batches.append(current)
    return batches


@dataclass
class MigrationReport:
    run_id: str
    migrated: List[Tuple[str, str]] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    batches_committed: int = 0
    mutations_committed: int = 0
    error: Optional[str] = None

    @property
    def is_noop(self) -> bool:
        return not (self.migrated or self.skipped or self.failed)


class IdentityMigrator:
    """
    Renumbers legacy employee ids across employees, users and payroll.

    Each legacy record is claimed before an id is computed for it. Claims
    are insert-only documents in ``migration_claims``; a live claim held by
    another run is skipped, a claim older than the TTL or released by a
    failed run can be taken over. New employee records are written with an
    insert-only ``Create``, so two runs can never both produce the same id.
    """

    def __init__(
        self,
        store: DirectoryStore,
        scheme: Optional[EmployeeIdScheme] = None,
        batch_limit: Optional[int] = None,
        claim_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.scheme = scheme or EmployeeIdScheme.from_settings()
        self.batch_limit = batch_limit or global_settings.MIGRATION_BATCH_LIMIT
        self.claim_ttl = claim_ttl if claim_ttl is not None else global_settings.MIGRATION_CLAIM_TTL_SECONDS
        self.clock = clock
        self._lock = asyncio.Lock()

    async def run_once(self) -> MigrationReport:
        """Run one migration pass; never raises on write failures."""
        async with self._lock:
            return await self._run(uuid.uuid4().hex)

    async def _run(self, run_id: str) -> MigrationReport:
        report = MigrationReport(run_id=run_id)
        # Claims taken by this run and not yet completed
        claims: Dict[str, MigrationClaim] = {}

        try:
            employees = {doc["id"]: doc for doc in await self.store.list_all(EMPLOYEES) if doc.get("id")}
            legacy_ids = stable_order(i for i in employees if self.scheme.is_legacy(i))
            if not legacy_ids:
                return report

            logger.info("Employee id migration %s: %d legacy record(s) found", run_id, len(legacy_ids))

            for old_id in legacy_ids:
                claim = await self._claim(old_id, run_id)
                if claim is None:
                    report.skipped.append(old_id)
                else:
                    claims[old_id] = claim

            if report.skipped:
                logger.info("Employee id migration %s: skipped records claimed elsewhere: %s", run_id, report.skipped)
            if not claims:
                return report

            reserved = {old_id: c.new_id for old_id, c in claims.items() if c.new_id}
            command = MigrationCommand.plan(claims.keys(), employees.keys(), self.scheme, reserved)

            groups = []
            for renumbering in command.renumberings:
                mutations = await self._mutations_for(renumbering, employees[renumbering.old_id])
                if len(mutations) > self.batch_limit and not claims[renumbering.old_id].new_id:
                    # Split groups need their id on record so a resumed run reuses it
                    await self.store.atomic_batch([
                        Update(MIGRATION_CLAIMS, renumbering.old_id, {"newId": renumbering.new_id})
                    ])
                groups.append((renumbering, mutations))

            for batch in chunk_groups(groups, self.batch_limit):
                await self.store.atomic_batch(batch.mutations)

                report.batches_committed += 1
                report.mutations_committed += len(batch.mutations)
                for renumbering in batch.completes:
                    claims.pop(renumbering.old_id, None)
                    report.migrated.append((renumbering.old_id, renumbering.new_id))
        except (BatchCommitError, SQLAlchemyError) as e:
            failure = MigrationWriteFailure(str(e))
            logger.error("Employee id migration %s: write failed: %s", run_id, failure.message)
            report.error = failure.message
            report.failed = list(claims)
            await self._release(claims.keys())
            return report

        logger.info(
            "Employee id migration %s: migrated %d employee(s) in %d batch(es)",
            run_id, len(report.migrated), report.batches_committed,
        )
        return report

    async def _mutations_for(self, renumbering: EmployeeRenumbering, employee: Mapping) -> List[Mutation]:
        staff_users = await self.store.query_equals(USERS, [("employeeId", renumbering.old_id)])
        payroll_records = await self.store.query_equals(PAYROLL_RECORDS, [("employeeId", renumbering.old_id)])
        return build_mutation_group(renumbering, employee, staff_users, payroll_records)

    async def _claim(self, old_id: str, run_id: str) -> Optional[MigrationClaim]:
        now = self.clock()
        claim = MigrationClaim(employee_id=old_id, owner=run_id, claimed_at=now)
        try:
            await self.store.atomic_batch([Create(MIGRATION_CLAIMS, old_id, claim.to_document())])
            return claim
        except BatchCommitError:
            pass

        document = await self.store.get_by_id(MIGRATION_CLAIMS, old_id)
        if document is None:
            # Released between our insert and our read; leave it to the next run
            return None

        existing = MigrationClaim.model_validate(document)
        if existing.owner and now - existing.claimed_at < self.claim_ttl:
            return None

        try:
            await self.store.atomic_batch([
                Update(MIGRATION_CLAIMS, old_id, {"owner": run_id, "claimedAt": now})
            ])
        except BatchCommitError:
            return None
        return existing.model_copy(update={"owner": run_id, "claimed_at": now})

    async def _release(self, old_ids: Iterable[str]) -> None:
        for old_id in old_ids:
            try:
                await self.store.atomic_batch([Update(MIGRATION_CLAIMS, old_id, {"owner": None})])
            except (BatchCommitError, SQLAlchemyError) as e:
                # The claim expires after the TTL anyway
                logger.warning("Could not release migration claim for %s: %s", old_id, e)

    async def watch_employees(self) -> None:
        """Run a pass for every change notification on the employee collection."""
        async for event in self.store.watch(EMPLOYEES):
            try:
                await self.run_once()
            except Exception:
                logger.exception("Employee id migration run failed after change to %s", event.changed_ids)
