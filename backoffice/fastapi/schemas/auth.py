"""
Pydantic schemas for the authentication, employee and migration endpoints.

Request bodies accept both camelCase and snake_case field names so the
browser client can post the same shapes it stores.
"""

from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from backoffice.fastapi.schemas.identity import CapabilitiesRead, IdentityRead, Portal


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoginRequest(CamelModel):
    """Schema for a password login on the shared login form."""

    login_id: str = Field(
        ...,
        max_length=255,
        description="Client id, branch portal username, staff email or employee id",
        examples=["C001", "branch.north", "accounts@example.com", "911001"]
    )

    secret: str = Field(
        ...,
        max_length=255,
        description="Password for the matched login scheme",
        examples=["portal-pass"]
    )

    remember: bool = Field(
        default=False,
        description="Issue a long-lived session token"
    )


class OAuthLoginRequest(CamelModel):
    """Schema for a login with an OAuth provider id token."""

    id_token: str = Field(
        ...,
        min_length=1,
        description="Id token returned by the provider's sign-in popup"
    )

    remember: bool = Field(default=False)


class SessionResponse(CamelModel):
    """Schema returned after a successful login or session restore."""

    access_token: Optional[str] = Field(
        None,
        description="Session token; only set when a new token was issued"
    )
    token_type: str = Field(default="bearer")
    expires_in: Optional[int] = Field(None, description="Token lifetime in seconds")
    identity: IdentityRead
    capabilities: CapabilitiesRead
    route: Portal = Field(..., description="Portal the client should open")
    provider_signed_out: bool = Field(
        default=False,
        description="True when a provider session was opened and has already been ended"
    )


class PasswordChangeRequest(CamelModel):
    """Schema for a staff user changing their own password."""

    new_password: str = Field(
        ...,
        min_length=6,
        max_length=100,
        description="New password (minimum 6 characters)"
    )

    confirm_password: str = Field(..., max_length=100)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords do not match.")
        return self


class EmployeeCreate(CamelModel):
    """Schema for adding an employee together with their portal account."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str = Field(
        ...,
        min_length=1,
        max_length=32,
        pattern=r"^[A-Za-z0-9_-]+$",
        description="Employee code; also the portal login id and initial password",
        examples=["911004"]
    )

    name: str = Field(..., min_length=1, max_length=255, examples=["Asha Rao"])

    designation: str = Field(default="", max_length=255, examples=["Field Executive"])

    branch_id: str = Field(..., min_length=1, description="Branch the employee works at", examples=["B001"])

    status: str = Field(default="Active")


class PortalAccountRead(CamelModel):
    """Portal login of an employee; the password is never returned."""

    uid: str
    email: str
    employee_id: Optional[str] = None
    display_name: str = ""


class EmployeeCreateResponse(CamelModel):
    employee_id: str
    portal_account: PortalAccountRead
    message: str = "Employee created with portal access"


class MigrationReportRead(CamelModel):
    """Outcome of one employee id migration run."""

    run_id: str
    migrated: List[Tuple[str, str]] = Field(
        default_factory=list,
        description="Pairs of (old id, new id)"
    )
    skipped: List[str] = Field(default_factory=list, description="Records claimed by another run")
    failed: List[str] = Field(default_factory=list)
    batches_committed: int = 0
    mutations_committed: int = 0
    error: Optional[str] = None
