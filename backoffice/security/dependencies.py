"""
Authentication dependencies for FastAPI.

This module provides dependency functions for protecting FastAPI routes
and wiring the directory, auth provider and session store into them.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from backoffice.fastapi.crud.directory import DirectoryStore, SqlDirectoryStore
from backoffice.fastapi.dependencies.database import AsyncSessionLocal
from backoffice.fastapi.schemas.directory import UserRole
from backoffice.fastapi.schemas.identity import (
    AdminFallbackIdentity, BranchManagerIdentity, IdentityBase, Portal, StaffIdentity,
)
from backoffice.fastapi.services.credentials import CredentialResolver
from backoffice.fastapi.services.migration import IdentityMigrator
from backoffice.fastapi.services.roles import RoleProjector
from backoffice.fastapi.services.session import SessionStore, TokenSessionBlob
from backoffice.security.provider import AuthProvider, FirebaseAuthProvider


# HTTP Bearer token scheme; a missing token is handled per route
security = HTTPBearer(auto_error=False)


@lru_cache
def get_store() -> DirectoryStore:
    """
    The process-wide directory store.

    One instance is shared so change notifications reach every watcher.
    """
    return SqlDirectoryStore(AsyncSessionLocal)


@lru_cache
def get_provider() -> AuthProvider:
    return FirebaseAuthProvider()


def get_projector() -> RoleProjector:
    return RoleProjector()


def get_resolver(
    store: DirectoryStore = Depends(get_store),
    provider: AuthProvider = Depends(get_provider),
) -> CredentialResolver:
    return CredentialResolver(store, provider)


def get_migrator(request: Request, store: DirectoryStore = Depends(get_store)) -> IdentityMigrator:
    """The migrator started by the app lifespan, or a new one bound to ``store``."""
    migrator = getattr(request.app.state, "migrator", None)
    if migrator is not None and migrator.store is store:
        return migrator
    return IdentityMigrator(store)


async def get_session_store(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    store: DirectoryStore = Depends(get_store),
    provider: AuthProvider = Depends(get_provider),
) -> SessionStore:
    """
    Request-scoped session store over the bearer session token.

    Usage:
        @app.post("/logout")
        async def logout(session: SessionStore = Depends(get_session_store)):
            await session.clear()
    """
    token = credentials.credentials if credentials else None
    return SessionStore(store, TokenSessionBlob(token), provider)


async def get_current_identity(session: SessionStore = Depends(get_session_store)) -> IdentityBase:
    """
    Restore and revalidate the caller's identity.

    Raises:
        HTTPException: 401 if there is no session or it no longer validates
    """
    identity = await session.restore()
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


async def get_current_admin(identity: IdentityBase = Depends(get_current_identity)) -> IdentityBase:
    """
    Get the current identity if it holds the Admin role.

    Raises:
        HTTPException: 403 for any other role
    """
    is_admin = isinstance(identity, AdminFallbackIdentity) or (
        isinstance(identity, StaffIdentity) and identity.role == UserRole.ADMIN
    )
    if not is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions. Admin access required."
        )
    return identity


async def get_staff_console_identity(
    identity: IdentityBase = Depends(get_current_identity),
    projector: RoleProjector = Depends(get_projector),
) -> IdentityBase:
    """Get the current identity if it is routed to the staff console."""
    if projector.route(identity) != Portal.STAFF_CONSOLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions. Staff console access required."
        )
    return identity


async def get_current_staff_user(identity: IdentityBase = Depends(get_current_identity)) -> StaffIdentity:
    """Get the current identity if it has a login record in ``users``."""
    if not isinstance(identity, StaffIdentity):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only staff and employee logins can change their password here."
        )
    return identity


def can_manage_branch(identity: IdentityBase, branch_id: str, projector: RoleProjector) -> bool:
    """Admins manage every branch; branch managers only their own."""
    if isinstance(identity, (BranchManagerIdentity, StaffIdentity)) and identity.role == UserRole.BRANCH_MANAGER:
        return projector.project(identity).allowed_branches.permits(branch_id)
    return isinstance(identity, AdminFallbackIdentity) or (
        isinstance(identity, StaffIdentity) and identity.role == UserRole.ADMIN
    )


# Convenience dependencies for different permission levels
RequireIdentity = Depends(get_current_identity)
RequireAdmin = Depends(get_current_admin)
RequireStaffConsole = Depends(get_staff_console_identity)
RequireStaffUser = Depends(get_current_staff_user)
