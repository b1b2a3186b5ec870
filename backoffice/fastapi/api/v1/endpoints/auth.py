"""
Authentication endpoints.

One shared login form serves clients, branch managers, staff, employees
and the delegated admin account. Every response carries a freshly
projected capability set and the portal the client should open.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from backoffice.fastapi.schemas.auth import (
    LoginRequest, OAuthLoginRequest, PasswordChangeRequest, SessionResponse,
)
from backoffice.fastapi.schemas.identity import CapabilitiesRead, IdentityBase, IdentityRead
from backoffice.fastapi.crud.directory import DirectoryStore
from backoffice.fastapi.services.credentials import CredentialResolver
from backoffice.fastapi.services.employees import EmployeeService
from backoffice.fastapi.services.roles import RoleProjector
from backoffice.fastapi.services.session import SessionStore
from backoffice.security.auth import session_expires_in
from backoffice.security.dependencies import (
    RequireIdentity, RequireStaffUser, get_projector, get_resolver, get_session_store, get_store,
)
from backoffice.security.errors import (
    GENERIC_LOGIN_FAILURE, AccessDisabled, IdentityError, InvalidCredentials, ProviderError, RecordNotFound,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["authentication"])


def login_error(e: IdentityError) -> HTTPException:
    """Translate a resolver failure into a response that names no strategy."""
    if isinstance(e, AccessDisabled):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)
    if isinstance(e, ProviderError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
    if isinstance(e, InvalidCredentials):
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=GENERIC_LOGIN_FAILURE)


def session_response(
    identity: IdentityBase,
    projector: RoleProjector,
    token: str | None = None,
    remember: bool = False,
    provider_signed_out: bool = False,
) -> SessionResponse:
    capabilities = projector.project(identity)
    return SessionResponse(
        access_token=token,
        expires_in=session_expires_in(remember) if token else None,
        identity=IdentityRead.from_identity(identity),
        capabilities=CapabilitiesRead.from_capabilities(capabilities),
        route=capabilities.portal,
        provider_signed_out=provider_signed_out,
    )


@router.post("/login", response_model=SessionResponse, summary="Login")
async def login(
    body: LoginRequest,
    resolver: CredentialResolver = Depends(get_resolver),
    session: SessionStore = Depends(get_session_store),
    projector: RoleProjector = Depends(get_projector),
):
    """
    Authenticate with a login id and password.

    **Process:**
    1. Try client, branch, staff and delegated admin logins in that order
    2. Persist the identity in a signed session token
    3. Return the token with the identity, its capabilities and its portal

    **Errors:**
    - **401**: Invalid credentials (one generic message for every scheme)
    - **403**: Client portal access disabled
    - **502**: Authentication provider or directory unavailable
    """
    try:
        identity = await resolver.resolve(body.login_id, body.secret)
    except IdentityError as e:
        raise login_error(e)

    await session.persist(identity, body.remember)
    return session_response(identity, projector, session.blob.token, body.remember)


@router.post("/oauth", response_model=SessionResponse, summary="Login with OAuth provider")
async def oauth_login(
    body: OAuthLoginRequest,
    resolver: CredentialResolver = Depends(get_resolver),
    session: SessionStore = Depends(get_session_store),
    projector: RoleProjector = Depends(get_projector),
):
    """
    Authenticate with a provider id token.

    The verified email is looked up in clients, branches and staff users.
    The provider session is always ended, so the provider never becomes
    the source of truth for access.

    **Errors:**
    - **401**: Email not registered
    - **403**: Client portal access disabled
    - **502**: Provider failure or no email on the provider account
    """
    try:
        identity = await resolver.resolve_oauth(body.id_token)
    except IdentityError as e:
        raise login_error(e)

    await session.persist(identity, body.remember)
    return session_response(
        identity, projector, session.blob.token, body.remember, provider_signed_out=True
    )


@router.get("/session", response_model=SessionResponse, summary="Restore Session")
async def restore_session(
    identity: IdentityBase = RequireIdentity,
    projector: RoleProjector = Depends(get_projector),
):
    """
    Revalidate the session token against the directory.

    Returns the identity rebuilt from its current record, so edits made
    since login (revoked access, migrated employee id, new branch scope)
    are reflected. Responds 401 when the record is gone; the client must
    then drop its token.
    """
    return session_response(identity, projector)


@router.post("/logout", summary="Logout")
async def logout(session: SessionStore = Depends(get_session_store)):
    await session.clear()
    return {"message": "Logged out"}


@router.post("/password", summary="Change Password")
async def change_password(
    body: PasswordChangeRequest,
    identity=RequireStaffUser,
    store: DirectoryStore = Depends(get_store),
):
    """
    Change the caller's own staff or employee portal password.

    **Errors:**
    - **401**: Not authenticated
    - **403**: Caller is not a staff or employee login
    - **422**: Passwords missing, too short, or not matching
    """
    try:
        await EmployeeService(store).change_password(identity.uid, body.new_password)
    except RecordNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    return {"message": "Password updated"}
