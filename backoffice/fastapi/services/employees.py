"""
Employee and staff account management.

Every employee gets a portal login in ``users`` whose login id and
initial password are the employee id itself. The employee record and its
login are written in one batch so neither can exist without the other.
"""

import logging
import uuid
from typing import Iterable, Optional

from backoffice.fastapi.crud.directory import BatchCommitError, Create, DirectoryStore, Update
from backoffice.fastapi.schemas.directory import (
    EMPLOYEES, USERS, EmployeeRecord, StaffUserRecord, UserRole,
)
from backoffice.security.errors import RecordNotFound

logger = logging.getLogger(__name__)


def new_uid() -> str:
    return uuid.uuid4().hex


def portal_account_for(employee: EmployeeRecord, uid: Optional[str] = None) -> StaffUserRecord:
    """Portal login for an employee: employee id as login and password."""
    return StaffUserRecord(
        uid=uid or new_uid(),
        email=employee.id,
        password=employee.id,
        display_name=employee.name,
        role=UserRole.EMPLOYEE,
        allowed_branch_ids=[employee.branch_id] if employee.branch_id else [],
        employee_id=employee.id,
    )


class EmployeeService:
    def __init__(self, store: DirectoryStore):
        self.store = store

    async def add_employee(self, employee: EmployeeRecord) -> StaffUserRecord:
        """
        Create an employee and its portal account atomically.

        Raises:
            BatchCommitError: An employee with this id already exists
        """
        account = portal_account_for(employee)
        await self.store.atomic_batch([
            Create(EMPLOYEES, employee.id, employee.to_document()),
            Create(USERS, account.uid, account.to_document()),
        ])
        logger.info("Employee %s created with portal account %s", employee.id, account.uid)
        return account

    async def reset_access(self, employee_id: str) -> StaffUserRecord:
        """
        Reset an employee's portal login to the employee id.

        Existing logins are updated in place; an employee without one gets
        a new login.

        Raises:
            RecordNotFound: No employee with this id
        """
        document = await self.store.get_by_id(EMPLOYEES, employee_id)
        if document is None:
            raise RecordNotFound(f"Employee {employee_id} not found")
        employee = EmployeeRecord.model_validate(document)

        users = await self.store.query_equals(USERS, [("employeeId", employee_id)])
        if not users:
            account = portal_account_for(employee)
            await self.store.atomic_batch([Create(USERS, account.uid, account.to_document())])
            logger.info("Portal account %s recreated for employee %s", account.uid, employee_id)
            return account

        credentials = {"email": employee_id, "password": employee_id, "employeeId": employee_id}
        await self.store.atomic_batch([Update(USERS, user["uid"], credentials) for user in users])
        logger.info("Portal access reset for employee %s", employee_id)
        return StaffUserRecord.model_validate({**users[0], **credentials})

    async def change_password(self, uid: str, new_password: str) -> None:
        try:
            await self.store.atomic_batch([Update(USERS, uid, {"password": new_password})])
        except BatchCommitError as e:
            raise RecordNotFound("Staff user record missing") from e


async def create_staff_user(
    store: DirectoryStore,
    email: str,
    password: str,
    role: UserRole,
    display_name: str = "",
    allowed_branch_ids: Iterable[str] = (),
    employee_id: Optional[str] = None,
) -> StaffUserRecord:
    """Add a staff login to ``users``."""
    user = StaffUserRecord(
        uid=new_uid(),
        email=email,
        password=password,
        display_name=display_name or email,
        role=role,
        allowed_branch_ids=list(allowed_branch_ids),
        employee_id=employee_id,
    )
    await store.atomic_batch([Create(USERS, user.uid, user.to_document())])
    return user
