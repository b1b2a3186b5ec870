"""
Back Office Identity - Authentication API Tests
"""

import pytest

from backoffice.fastapi.schemas.directory import USERS
from backoffice.security.errors import ACCESS_DISABLED_MESSAGE, EMAIL_NOT_REGISTERED, GENERIC_LOGIN_FAILURE

from conftest import bearer, login


class TestLoginEndpoint:

    @pytest.mark.asyncio
    async def test_client_login(self, client):
        data = await login(client, "C001", "acme-pass")

        assert data["accessToken"]
        assert data["tokenType"] == "bearer"
        assert data["route"] == "ClientPortal"
        assert data["identity"]["clientId"] == "C001"
        assert data["identity"]["origin"] == "Client"
        assert data["capabilities"]["visibleModules"] == []

    @pytest.mark.asyncio
    async def test_disabled_client(self, client):
        response = await client.post("/api/v1/auth/login", json={"loginId": "C002", "secret": "dormant-pass"})

        assert response.status_code == 403
        assert response.json()["detail"] == ACCESS_DISABLED_MESSAGE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("login_id,secret", [
        ("C001", "wrong"),
        ("north.portal", "wrong"),
        ("books@corp.example", "wrong"),
        ("nobody@else.example", "wrong"),
    ])
    async def test_invalid_credentials_share_one_message(self, client, login_id, secret):
        response = await client.post("/api/v1/auth/login", json={"loginId": login_id, "secret": secret})

        assert response.status_code == 401
        assert response.json()["detail"] == GENERIC_LOGIN_FAILURE

    @pytest.mark.asyncio
    async def test_accountant_capabilities(self, client):
        data = await login(client, "books@corp.example", "books-pass")

        assert data["route"] == "StaffConsole"
        modules = data["capabilities"]["visibleModules"]
        assert modules[0] == "Dashboard"
        assert "Payroll" not in modules
        assert "Notifications" not in modules
        assert data["capabilities"]["branchIds"] == ["B001"]
        assert data["capabilities"]["allBranches"] is False

    @pytest.mark.asyncio
    async def test_provider_admin_login(self, client):
        data = await login(client, "root@backoffice.example", "root-secret")

        assert data["identity"]["origin"] == "AdminFallback"
        assert data["identity"]["role"] == "Admin"
        assert "providerToken" not in data["identity"]
        assert data["capabilities"]["allBranches"] is True

    @pytest.mark.asyncio
    async def test_provider_outage(self, client, provider):
        provider.outage = True

        response = await client.post("/api/v1/auth/login", json={"loginId": "x@y.example", "secret": "z"})

        assert response.status_code == 502

    @pytest.mark.asyncio
    async def test_remember_issues_longer_token(self, client):
        short = await login(client, "C001", "acme-pass")
        long = await login(client, "C001", "acme-pass", remember=True)

        assert long["expiresIn"] > short["expiresIn"]


class TestOAuthEndpoint:

    @pytest.mark.asyncio
    async def test_oauth_login(self, client, provider):
        provider.oauth_tokens["google-token"] = "admin@corp.example"

        response = await client.post("/api/v1/auth/oauth", json={"idToken": "google-token"})

        assert response.status_code == 200
        data = response.json()
        assert data["providerSignedOut"] is True
        assert data["identity"]["uid"] == "U-ADMIN"
        assert len(provider.sign_outs) == 1

    @pytest.mark.asyncio
    async def test_oauth_unregistered_email(self, client, provider):
        provider.oauth_tokens["google-token"] = "stranger@gmail.example"

        response = await client.post("/api/v1/auth/oauth", json={"idToken": "google-token"})

        assert response.status_code == 401
        assert response.json()["detail"] == EMAIL_NOT_REGISTERED
        assert len(provider.sign_outs) == 1


class TestSessionEndpoints:

    @pytest.mark.asyncio
    async def test_restore_session(self, client):
        token = (await login(client, "books@corp.example", "books-pass"))["accessToken"]

        response = await client.get("/api/v1/auth/session", headers=bearer(token))

        assert response.status_code == 200
        assert response.json()["identity"]["uid"] == "U-ACC"
        assert response.json()["accessToken"] is None

    @pytest.mark.asyncio
    async def test_restore_without_token(self, client):
        response = await client.get("/api/v1/auth/session")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_restore_after_record_deleted(self, client, directory):
        token = (await login(client, "books@corp.example", "books-pass"))["accessToken"]
        await directory.delete(USERS, "U-ACC")

        response = await client.get("/api/v1/auth/session", headers=bearer(token))

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_restore_reflects_new_branch_scope(self, client, directory):
        token = (await login(client, "books@corp.example", "books-pass"))["accessToken"]
        record = await directory.get_by_id(USERS, "U-ACC")
        await directory.put(USERS, "U-ACC", {**record, "allowedBranchIds": ["B002"]})

        response = await client.get("/api/v1/auth/session", headers=bearer(token))

        assert response.json()["capabilities"]["branchIds"] == ["B002"]

    @pytest.mark.asyncio
    async def test_logout(self, client):
        token = (await login(client, "C001", "acme-pass"))["accessToken"]

        response = await client.post("/api/v1/auth/logout", headers=bearer(token))

        assert response.status_code == 200


class TestPasswordEndpoint:

    @pytest.mark.asyncio
    async def test_employee_changes_password(self, client):
        token = (await login(client, "8341", "8341"))["accessToken"]

        response = await client.post(
            "/api/v1/auth/password",
            json={"newPassword": "better-pass", "confirmPassword": "better-pass"},
            headers=bearer(token),
        )

        assert response.status_code == 200
        data = await login(client, "8341", "better-pass")
        assert data["route"] == "EmployeePortal"

        stale = await client.post("/api/v1/auth/login", json={"loginId": "8341", "secret": "8341"})
        assert stale.status_code == 401

    @pytest.mark.asyncio
    async def test_passwords_must_match(self, client):
        token = (await login(client, "8341", "8341"))["accessToken"]

        response = await client.post(
            "/api/v1/auth/password",
            json={"newPassword": "better-pass", "confirmPassword": "other-pass"},
            headers=bearer(token),
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_client_cannot_use_staff_password_change(self, client):
        token = (await login(client, "C001", "acme-pass"))["accessToken"]

        response = await client.post(
            "/api/v1/auth/password",
            json={"newPassword": "better-pass", "confirmPassword": "better-pass"},
            headers=bearer(token),
        )

        assert response.status_code == 403
