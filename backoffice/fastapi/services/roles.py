"""
Role projection and portal routing.

``RoleProjector`` maps an identity to the branches and modules it may see
and to the portal it is routed to. It does no I/O. ``PortalRouter`` is the
routing state machine built on top of it.
"""

from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from backoffice.fastapi.core.init_settings import global_settings
from backoffice.fastapi.schemas.directory import UserRole
from backoffice.fastapi.schemas.identity import (
    AdminFallbackIdentity, BranchManagerIdentity, BranchScope, Capabilities,
    ClientIdentity, IdentityBase, Module, Portal, StaffIdentity,
)
from backoffice.security.errors import IllegalTransition

ALL_MODULES: FrozenSet[Module] = frozenset(Module)
ACCOUNTANT_HIDDEN_MODULES = frozenset({Module.NOTIFICATIONS, Module.PAYROLL, Module.BRANCHES, Module.SETTINGS})
BRANCH_MANAGER_HIDDEN_MODULES = frozenset({Module.BRANCHES, Module.SETTINGS})

UNRESTRICTED = BranchScope(all_branches=True)
NO_BRANCHES = BranchScope()


class RoleProjector:
    """
    Pure identity -> capabilities mapping.

    Admins always see every branch. For restricted roles an empty
    ``allowedBranchIds`` means no branches, unless
    ``empty_scope_means_all`` restores the older "empty means all" reading.
    """

    def __init__(self, empty_scope_means_all: Optional[bool] = None):
        if empty_scope_means_all is None:
            empty_scope_means_all = global_settings.EMPTY_SCOPE_MEANS_ALL_BRANCHES
        self.empty_scope_means_all = empty_scope_means_all

    def restricted_scope(self, branch_ids: Iterable[str]) -> BranchScope:
        ids = frozenset(branch_ids)
        if ids:
            return BranchScope(branch_ids=ids)
        return UNRESTRICTED if self.empty_scope_means_all else NO_BRANCHES

    def project(self, identity: IdentityBase) -> Capabilities:
        if isinstance(identity, ClientIdentity):
            return Capabilities(allowed_branches=NO_BRANCHES, portal=Portal.CLIENT_PORTAL)

        if isinstance(identity, AdminFallbackIdentity):
            return self._console(UNRESTRICTED, ALL_MODULES)

        if isinstance(identity, BranchManagerIdentity):
            return self._console(
                self.restricted_scope(identity.allowed_branch_ids),
                ALL_MODULES - BRANCH_MANAGER_HIDDEN_MODULES,
            )

        if isinstance(identity, StaffIdentity):
            return self._project_staff(identity)

        raise TypeError(f"Unknown identity variant: {type(identity).__name__}")

    def _project_staff(self, identity: StaffIdentity) -> Capabilities:
        role = identity.role
        if role == UserRole.ADMIN:
            return self._console(UNRESTRICTED, ALL_MODULES)
        if role == UserRole.ACCOUNTANT:
            return self._console(
                self.restricted_scope(identity.allowed_branch_ids),
                ALL_MODULES - ACCOUNTANT_HIDDEN_MODULES,
            )
        if role == UserRole.BRANCH_MANAGER:
            return self._console(
                self.restricted_scope(identity.allowed_branch_ids),
                ALL_MODULES - BRANCH_MANAGER_HIDDEN_MODULES,
            )
        if role == UserRole.EMPLOYEE:
            return Capabilities(
                allowed_branches=self.restricted_scope(identity.allowed_branch_ids),
                portal=Portal.EMPLOYEE_PORTAL,
            )
        raise ValueError(f"Role {role.value} cannot hold a staff identity")

    @staticmethod
    def _console(scope: BranchScope, modules: FrozenSet[Module]) -> Capabilities:
        return Capabilities(allowed_branches=scope, visible_modules=modules, portal=Portal.STAFF_CONSOLE)

    def route(self, identity: IdentityBase) -> Portal:
        return self.project(identity).portal

    def visible_tickets(self, identity: IdentityBase, tickets: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Notification tickets an identity may see.

        Clients see their own tickets, branch managers the tickets of
        their own branches, other console users everything if the
        Notifications module is visible to them.
        """
        if isinstance(identity, ClientIdentity):
            return [t for t in tickets if t.get("clientId") == identity.client_id]

        capabilities = self.project(identity)
        if Module.NOTIFICATIONS not in capabilities.visible_modules:
            return []
        if identity.role == UserRole.BRANCH_MANAGER:
            return [t for t in tickets if capabilities.allowed_branches.permits(t.get("branchId"))]
        return list(tickets)

    def visible_records(
        self,
        identity: IdentityBase,
        records: Iterable[Dict[str, Any]],
        branch_field: str = "branchId",
    ) -> List[Dict[str, Any]]:
        """
        Branch-scoped documents (invoices, payments, payroll) an identity may see.

        Clients only see documents carrying their ``clientId`` and
        employees only documents carrying their ``employeeId``.
        """
        if isinstance(identity, ClientIdentity):
            return [r for r in records if r.get("clientId") == identity.client_id]
        if isinstance(identity, StaffIdentity) and identity.role == UserRole.EMPLOYEE:
            return [r for r in records if r.get("employeeId") == identity.employee_id]

        scope = self.project(identity).allowed_branches
        return [r for r in records if scope.permits(r.get(branch_field))]


class RouteState(str, Enum):
    UNAUTHENTICATED = "Unauthenticated"
    AUTHENTICATING = "Authenticating"
    CLIENT_PORTAL = "ClientPortal"
    EMPLOYEE_PORTAL = "EmployeePortal"
    STAFF_CONSOLE = "StaffConsole"


PORTAL_STATES = {
    Portal.CLIENT_PORTAL: RouteState.CLIENT_PORTAL,
    Portal.EMPLOYEE_PORTAL: RouteState.EMPLOYEE_PORTAL,
    Portal.STAFF_CONSOLE: RouteState.STAFF_CONSOLE,
}


class PortalRouter:
    """
    Routing state machine.

    Unauthenticated -> Authenticating -> ClientPortal | EmployeePortal |
    StaffConsole(active module). Logout from a portal returns to
    Unauthenticated; anything else raises ``IllegalTransition``.
    """

    def __init__(self, projector: Optional[RoleProjector] = None):
        self.projector = projector or RoleProjector()
        self.state = RouteState.UNAUTHENTICATED
        self.identity: Optional[IdentityBase] = None
        self.capabilities: Optional[Capabilities] = None
        self.active_module: Optional[Module] = None

    def _require(self, *states: RouteState) -> None:
        if self.state not in states:
            raise IllegalTransition(f"Cannot leave {self.state.value} this way")

    def begin_authentication(self) -> None:
        self._require(RouteState.UNAUTHENTICATED)
        self.state = RouteState.AUTHENTICATING

    def authentication_failed(self) -> None:
        self._require(RouteState.AUTHENTICATING)
        self.state = RouteState.UNAUTHENTICATED

    def complete_authentication(self, identity: IdentityBase) -> RouteState:
        self._require(RouteState.AUTHENTICATING)
        capabilities = self.projector.project(identity)

        self.identity = identity
        self.capabilities = capabilities
        self.state = PORTAL_STATES[capabilities.portal]
        self.active_module = None
        if self.state == RouteState.STAFF_CONSOLE:
            self.active_module = default_module(capabilities.visible_modules)
        return self.state

    def select_module(self, module: Module) -> None:
        self._require(RouteState.STAFF_CONSOLE)
        if module not in self.capabilities.visible_modules:
            raise IllegalTransition(f"Module {module.value} is not available")
        self.active_module = module

    def logout(self) -> None:
        self._require(RouteState.CLIENT_PORTAL, RouteState.EMPLOYEE_PORTAL, RouteState.STAFF_CONSOLE)
        self.state = RouteState.UNAUTHENTICATED
        self.identity = None
        self.capabilities = None
        self.active_module = None


def default_module(modules: FrozenSet[Module]) -> Optional[Module]:
    """Dashboard when visible, otherwise the first visible module in menu order."""
    for module in Module:
        if module in modules:
            return module
    return None
