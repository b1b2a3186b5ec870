from backoffice.fastapi.schemas.directory import (
    CLIENTS,
    BRANCHES,
    USERS,
    EMPLOYEES,
    PAYROLL_RECORDS,
    MIGRATION_CLAIMS,
    UserRole,
    DirectoryRecord,
    ClientRecord,
    BranchRecord,
    StaffUserRecord,
    EmployeeRecord,
    PayrollRecord,
    MigrationClaim
)
from backoffice.fastapi.schemas.identity import (
    OriginTag,
    Module,
    Portal,
    IdentityBase,
    ClientIdentity,
    BranchManagerIdentity,
    StaffIdentity,
    AdminFallbackIdentity,
    AuthenticatedIdentity,
    BranchScope,
    Capabilities,
    IdentityRead,
    CapabilitiesRead
)
from backoffice.fastapi.schemas.auth import (
    LoginRequest,
    OAuthLoginRequest,
    SessionResponse,
    PasswordChangeRequest,
    EmployeeCreate,
    EmployeeCreateResponse,
    PortalAccountRead,
    MigrationReportRead
)
