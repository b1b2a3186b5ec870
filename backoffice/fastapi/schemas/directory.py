"""
Pydantic schemas for the directory collections.

Documents are stored with camelCase field names, so every record model uses
a camel alias generator and accepts snake_case names on construction.
Unknown fields are kept as extras so that copying a record (for example
during an employee id migration) never drops data.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# Collection names
CLIENTS = "clients"
BRANCHES = "branches"
USERS = "users"
EMPLOYEES = "employees"
PAYROLL_RECORDS = "payroll_records"
MIGRATION_CLAIMS = "migration_claims"


class UserRole(str, Enum):
    """Roles a directory identity can hold."""

    ADMIN = "Admin"
    ACCOUNTANT = "Accountant"
    BRANCH_MANAGER = "Branch Manager"
    CLIENT = "Client"
    EMPLOYEE = "Employee"


class DirectoryRecord(BaseModel):
    """Base class for documents read from or written to the directory."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_document(self) -> Dict[str, Any]:
        """Serialize to the stored (camelCase, JSON-safe) representation."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Address(DirectoryRecord):
    line1: str = ""
    line2: Optional[str] = None
    city: str = ""
    state: str = ""
    pincode: str = ""
    country: str = ""


class BankDetails(DirectoryRecord):
    bank_name: str = ""
    account_number: str = ""
    ifsc_code: str = ""
    branch_name: str = ""
    swift_code: Optional[str] = None


class ClientRecord(DirectoryRecord):
    """Client account; doubles as the Client portal login."""

    id: str
    name: str = ""
    email: str = ""
    billing_address: Optional[Address] = None
    branch_ids: List[str] = Field(default_factory=list)
    portal_access: bool = False
    portal_password: Optional[str] = None


class BranchRecord(DirectoryRecord):
    """Branch; its portal credentials log in as the branch manager."""

    id: str
    name: str = ""
    email: str = ""
    portal_username: Optional[str] = None
    portal_password: Optional[str] = None
    bank_details: Optional[BankDetails] = None
    next_invoice_number: int = 1


class StaffUserRecord(DirectoryRecord):
    """Login entry for Admin, Accountant, Branch Manager and Employee users."""

    uid: str
    email: str
    password: str
    display_name: str = ""
    role: UserRole
    allowed_branch_ids: List[str] = Field(default_factory=list)
    employee_id: Optional[str] = None


class SalaryStructure(DirectoryRecord):
    basic: float = 0
    hra: float = 0
    conveyance: float = 0
    special_allowance: float = 0
    pf_deduction: float = 0
    pt_deduction: float = 0
    tds_deduction: float = 0


class EmployeeRecord(DirectoryRecord):
    """HR record; ``id`` lives in the legacy or the current namespace."""

    id: str
    name: str = ""
    designation: str = ""
    branch_id: str = ""
    status: str = "Active"
    bank_details: Optional[Dict[str, Any]] = None
    salary: Optional[SalaryStructure] = None


class PayrollRecord(DirectoryRecord):
    id: str
    employee_id: str
    month: str = ""
    year: int = 0
    earnings: Dict[str, float] = Field(default_factory=dict)
    deductions: Dict[str, float] = Field(default_factory=dict)
    net_pay: float = 0
    status: str = "Draft"


class MigrationClaim(DirectoryRecord):
    """Per-record claim taken by an identity migrator run."""

    employee_id: str
    new_id: Optional[str] = None
    owner: Optional[str] = None
    claimed_at: float = 0
