"""
Back Office Identity - Role Projection and Routing Tests
"""

import pytest

from backoffice.fastapi.schemas.directory import UserRole
from backoffice.fastapi.schemas.identity import (
    AdminFallbackIdentity, BranchManagerIdentity, ClientIdentity, Module, Portal, StaffIdentity,
)
from backoffice.fastapi.services.roles import (
    ALL_MODULES, PortalRouter, RoleProjector, RouteState, default_module,
)
from backoffice.security.errors import IllegalTransition


@pytest.fixture
def projector():
    return RoleProjector(empty_scope_means_all=False)


def accountant(branches=("B001",)):
    return StaffIdentity(uid="U-ACC", role=UserRole.ACCOUNTANT, allowed_branch_ids=frozenset(branches))


class TestRoleProjector:

    def test_client_routes_to_client_portal(self, projector):
        capabilities = projector.project(ClientIdentity(uid="C001", client_id="C001"))

        assert capabilities.portal == Portal.CLIENT_PORTAL
        assert capabilities.visible_modules == frozenset()
        assert not capabilities.shows_module_switcher

    def test_employee_routes_to_employee_portal(self, projector):
        identity = StaffIdentity(uid="U-EMP", role=UserRole.EMPLOYEE, employee_id="8341")

        assert projector.route(identity) == Portal.EMPLOYEE_PORTAL

    @pytest.mark.parametrize("identity", [
        StaffIdentity(uid="U-ADMIN", role=UserRole.ADMIN),
        AdminFallbackIdentity(uid="root-uid"),
    ])
    def test_admin_sees_everything(self, projector, identity):
        capabilities = projector.project(identity)

        assert capabilities.portal == Portal.STAFF_CONSOLE
        assert capabilities.allowed_branches.all_branches
        assert capabilities.visible_modules == ALL_MODULES
        assert capabilities.shows_module_switcher

    def test_accountant_hidden_modules(self, projector):
        modules = projector.project(accountant()).visible_modules

        for hidden in (Module.NOTIFICATIONS, Module.PAYROLL, Module.BRANCHES, Module.SETTINGS):
            assert hidden not in modules
        assert Module.INVOICES in modules
        assert Module.ACCOUNTS in modules

    @pytest.mark.parametrize("identity", [
        BranchManagerIdentity(uid="B001", allowed_branch_ids=frozenset({"B001"})),
        StaffIdentity(uid="U-BM", role=UserRole.BRANCH_MANAGER, allowed_branch_ids=frozenset({"B001"})),
    ])
    def test_branch_manager_scope_and_modules(self, projector, identity):
        capabilities = projector.project(identity)

        assert capabilities.portal == Portal.STAFF_CONSOLE
        assert Module.BRANCHES not in capabilities.visible_modules
        assert Module.SETTINGS not in capabilities.visible_modules
        assert Module.PAYROLL in capabilities.visible_modules
        assert capabilities.allowed_branches.permits("B001")
        assert not capabilities.allowed_branches.permits("B002")

    def test_empty_scope_fails_closed_by_default(self, projector):
        scope = projector.project(accountant(branches=())).allowed_branches

        assert not scope.all_branches
        assert not scope.permits("B001")

    def test_empty_scope_legacy_reading(self):
        scope = RoleProjector(empty_scope_means_all=True).project(accountant(branches=())).allowed_branches

        assert scope.permits("B001")
        assert scope.permits("B999")

    def test_visible_records_are_branch_scoped(self, projector):
        invoices = [
            {"id": "I1", "branchId": "B001", "clientId": "C001"},
            {"id": "I2", "branchId": "B002", "clientId": "C002"},
        ]

        assert [i["id"] for i in projector.visible_records(accountant(), invoices)] == ["I1"]
        assert [i["id"] for i in projector.visible_records(AdminFallbackIdentity(uid="r"), invoices)] == ["I1", "I2"]
        client = ClientIdentity(uid="C002", client_id="C002")
        assert [i["id"] for i in projector.visible_records(client, invoices)] == ["I2"]

    def test_visible_records_for_employee(self, projector):
        payslips = [{"id": "P1", "employeeId": "8341"}, {"id": "P2", "employeeId": "9000"}]
        identity = StaffIdentity(uid="U-EMP", role=UserRole.EMPLOYEE, employee_id="8341")

        assert [p["id"] for p in projector.visible_records(identity, payslips)] == ["P1"]

    def test_visible_tickets(self, projector):
        tickets = [
            {"id": "T1", "branchId": "B001", "clientId": "C001"},
            {"id": "T2", "branchId": "B002", "clientId": "C002"},
        ]
        manager = BranchManagerIdentity(uid="B001", allowed_branch_ids=frozenset({"B001"}))

        assert [t["id"] for t in projector.visible_tickets(manager, tickets)] == ["T1"]
        assert projector.visible_tickets(accountant(), tickets) == []
        assert len(projector.visible_tickets(StaffIdentity(uid="A", role=UserRole.ADMIN), tickets)) == 2
        client = ClientIdentity(uid="C001", client_id="C001")
        assert [t["id"] for t in projector.visible_tickets(client, tickets)] == ["T1"]


class TestPortalRouter:

    def test_staff_console_flow(self, projector):
        router = PortalRouter(projector)
        router.begin_authentication()

        state = router.complete_authentication(accountant())

        assert state == RouteState.STAFF_CONSOLE
        assert router.active_module == Module.DASHBOARD
        router.select_module(Module.INVOICES)
        assert router.active_module == Module.INVOICES

        router.logout()
        assert router.state == RouteState.UNAUTHENTICATED
        assert router.identity is None

    def test_hidden_module_cannot_be_selected(self, projector):
        router = PortalRouter(projector)
        router.begin_authentication()
        router.complete_authentication(accountant())

        with pytest.raises(IllegalTransition):
            router.select_module(Module.PAYROLL)
        assert router.active_module == Module.DASHBOARD

    def test_portals_have_no_module_switcher(self, projector):
        router = PortalRouter(projector)
        router.begin_authentication()

        assert router.complete_authentication(ClientIdentity(uid="C001", client_id="C001")) == RouteState.CLIENT_PORTAL
        assert router.active_module is None
        with pytest.raises(IllegalTransition):
            router.select_module(Module.DASHBOARD)

    def test_failed_authentication_returns_to_start(self, projector):
        router = PortalRouter(projector)
        router.begin_authentication()
        router.authentication_failed()

        assert router.state == RouteState.UNAUTHENTICATED

    def test_illegal_transitions(self, projector):
        router = PortalRouter(projector)

        with pytest.raises(IllegalTransition):
            router.logout()
        with pytest.raises(IllegalTransition):
            router.complete_authentication(accountant())

        router.begin_authentication()
        with pytest.raises(IllegalTransition):
            router.begin_authentication()

    def test_default_module(self):
        assert default_module(ALL_MODULES) == Module.DASHBOARD
        assert default_module(frozenset({Module.PAYROLL, Module.INVOICES})) == Module.INVOICES
        assert default_module(frozenset()) is None
