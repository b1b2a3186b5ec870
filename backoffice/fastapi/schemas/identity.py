"""
Authenticated identity and capability schemas.

An identity is a tagged union discriminated by ``origin``: each login
path produces exactly one variant, and routing code matches on the
variant instead of on loose boolean flags.
"""

from enum import Enum
from typing import Annotated, FrozenSet, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel

from backoffice.fastapi.schemas.directory import UserRole


class OriginTag(str, Enum):
    """Which credential scheme produced an identity."""

    CLIENT = "Client"
    STAFF = "Staff"
    BRANCH_USER = "BranchUser"
    ADMIN_FALLBACK = "AdminFallback"


class Module(str, Enum):
    """Staff console modules."""

    DASHBOARD = "Dashboard"
    INVOICES = "Invoices"
    PAYMENTS = "Payments"
    CLIENTS = "Clients"
    BRANCHES = "Branches"
    ACCOUNTS = "Accounts"
    SETTINGS = "Settings"
    SCANNER = "Scanner"
    NOTIFICATIONS = "Notifications"
    PAYROLL = "Payroll"


class Portal(str, Enum):
    """Top-level UI surface an identity is routed to."""

    CLIENT_PORTAL = "ClientPortal"
    EMPLOYEE_PORTAL = "EmployeePortal"
    STAFF_CONSOLE = "StaffConsole"


class IdentityBase(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    uid: str
    email: str = ""
    display_name: str = ""
    allowed_branch_ids: FrozenSet[str] = frozenset()


class ClientIdentity(IdentityBase):
    origin: Literal[OriginTag.CLIENT] = OriginTag.CLIENT
    role: Literal[UserRole.CLIENT] = UserRole.CLIENT
    client_id: str


class BranchManagerIdentity(IdentityBase):
    origin: Literal[OriginTag.BRANCH_USER] = OriginTag.BRANCH_USER
    role: Literal[UserRole.BRANCH_MANAGER] = UserRole.BRANCH_MANAGER


class StaffIdentity(IdentityBase):
    origin: Literal[OriginTag.STAFF] = OriginTag.STAFF
    role: UserRole
    employee_id: Optional[str] = None

    @model_validator(mode="after")
    def check_role_linkage(self):
        if self.role == UserRole.CLIENT:
            raise ValueError("staff accounts cannot hold the Client role")
        if self.role == UserRole.EMPLOYEE and not self.employee_id:
            raise ValueError("Employee accounts must reference an employee record")
        return self


class AdminFallbackIdentity(IdentityBase):
    origin: Literal[OriginTag.ADMIN_FALLBACK] = OriginTag.ADMIN_FALLBACK
    role: Literal[UserRole.ADMIN] = UserRole.ADMIN
    # Provider refresh token, used only to revalidate on session restore
    provider_token: Optional[str] = Field(default=None, repr=False)


AuthenticatedIdentity = Annotated[
    Union[ClientIdentity, BranchManagerIdentity, StaffIdentity, AdminFallbackIdentity],
    Field(discriminator="origin"),
]

identity_adapter: TypeAdapter = TypeAdapter(AuthenticatedIdentity)


def identity_to_json(identity: IdentityBase) -> str:
    return identity.model_dump_json(by_alias=True)


def identity_from_json(blob: str | bytes) -> IdentityBase:
    return identity_adapter.validate_json(blob)


class BranchScope(BaseModel):
    """
    Branches an identity may see.

    ``all_branches`` means unrestricted; otherwise only ``branch_ids``.
    """

    model_config = ConfigDict(frozen=True)

    all_branches: bool = False
    branch_ids: FrozenSet[str] = frozenset()

    def permits(self, branch_id: Optional[str]) -> bool:
        if self.all_branches:
            return True
        return branch_id is not None and branch_id in self.branch_ids


class Capabilities(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed_branches: BranchScope
    visible_modules: FrozenSet[Module] = frozenset()
    portal: Portal

    @property
    def shows_module_switcher(self) -> bool:
        return self.portal == Portal.STAFF_CONSOLE


class IdentityRead(BaseModel):
    """Public view of an identity; never carries provider tokens."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    uid: str
    email: str
    display_name: str
    role: UserRole
    origin: OriginTag
    allowed_branch_ids: list[str]
    client_id: Optional[str] = None
    employee_id: Optional[str] = None

    @classmethod
    def from_identity(cls, identity: IdentityBase) -> "IdentityRead":
        return cls(
            uid=identity.uid,
            email=identity.email,
            display_name=identity.display_name,
            role=identity.role,
            origin=identity.origin,
            allowed_branch_ids=sorted(identity.allowed_branch_ids),
            client_id=getattr(identity, "client_id", None),
            employee_id=getattr(identity, "employee_id", None),
        )


class CapabilitiesRead(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    all_branches: bool
    branch_ids: list[str]
    visible_modules: list[Module]
    portal: Portal

    @classmethod
    def from_capabilities(cls, capabilities: Capabilities) -> "CapabilitiesRead":
        order = list(Module)
        return cls(
            all_branches=capabilities.allowed_branches.all_branches,
            branch_ids=sorted(capabilities.allowed_branches.branch_ids),
            visible_modules=sorted(capabilities.visible_modules, key=order.index),
            portal=capabilities.portal,
        )
