"""
Employee onboarding endpoints.

Adding an employee also creates its portal login; resetting access puts
the login back to the employee id as both login and password.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from backoffice.fastapi.crud.directory import BatchCommitError, DirectoryStore
from backoffice.fastapi.schemas.auth import EmployeeCreate, EmployeeCreateResponse, PortalAccountRead
from backoffice.fastapi.schemas.directory import EMPLOYEES, EmployeeRecord
from backoffice.fastapi.schemas.identity import IdentityBase
from backoffice.fastapi.services.employees import EmployeeService
from backoffice.fastapi.services.roles import RoleProjector
from backoffice.security.dependencies import RequireStaffConsole, can_manage_branch, get_projector, get_store
from backoffice.security.errors import RecordNotFound


router = APIRouter(tags=["employees"])


def portal_account_read(account) -> PortalAccountRead:
    return PortalAccountRead(
        uid=account.uid,
        email=account.email,
        employee_id=account.employee_id,
        display_name=account.display_name,
    )


def require_branch(identity: IdentityBase, branch_id: str, projector: RoleProjector) -> None:
    if not can_manage_branch(identity, branch_id, projector):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions for this branch."
        )


@router.post("", response_model=EmployeeCreateResponse, status_code=status.HTTP_201_CREATED,
             summary="Add Employee")
async def add_employee(
    body: EmployeeCreate,
    identity: IdentityBase = RequireStaffConsole,
    store: DirectoryStore = Depends(get_store),
    projector: RoleProjector = Depends(get_projector),
):
    """
    Add an employee and create its portal login in one batch.

    **Permissions:** Admin, or branch manager of the employee's branch

    **Errors:**
    - **403**: Branch outside the caller's scope
    - **409**: Employee id already exists
    """
    require_branch(identity, body.branch_id, projector)

    employee = EmployeeRecord.model_validate(body.model_dump(by_alias=True))
    try:
        account = await EmployeeService(store).add_employee(employee)
    except BatchCommitError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Employee {employee.id} already exists"
        )

    return EmployeeCreateResponse(employee_id=employee.id, portal_account=portal_account_read(account))


@router.post("/{employee_id}/reset-access", response_model=PortalAccountRead, summary="Reset Portal Access")
async def reset_access(
    employee_id: str,
    identity: IdentityBase = RequireStaffConsole,
    store: DirectoryStore = Depends(get_store),
    projector: RoleProjector = Depends(get_projector),
):
    """
    Reset an employee's portal login to the employee id.

    **Errors:**
    - **403**: Employee's branch outside the caller's scope
    - **404**: Employee not found
    """
    document = await store.get_by_id(EMPLOYEES, employee_id)
    if document is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Employee not found")
    require_branch(identity, document.get("branchId", ""), projector)

    try:
        account = await EmployeeService(store).reset_access(employee_id)
    except RecordNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except BatchCommitError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Portal access changed concurrently; try again"
        )
    return portal_account_read(account)
