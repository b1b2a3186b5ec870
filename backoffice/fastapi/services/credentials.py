"""
Credential resolution.

A login attempt is run through an ordered list of strategies; the first
strategy that structurally matches decides the outcome, even when a later
strategy would also match. A client with portal access disabled therefore
fails immediately instead of falling through to branch or staff lookups.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence, Union

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from backoffice.fastapi.crud.directory import DirectoryStore
from backoffice.fastapi.schemas.directory import (
    BRANCHES, CLIENTS, USERS,
    BranchRecord, ClientRecord, StaffUserRecord,
)
from backoffice.fastapi.schemas.identity import (
    AdminFallbackIdentity, BranchManagerIdentity, ClientIdentity,
    IdentityBase, StaffIdentity,
)
from backoffice.security.errors import (
    EMAIL_NOT_REGISTERED, AccessDisabled, InvalidCredentials, ProviderError,
)
from backoffice.security.provider import AuthProvider, ProviderAccount

logger = logging.getLogger(__name__)


class NoMatch:
    """Returned by a strategy that does not apply to an attempt."""

    def __repr__(self) -> str:
        return "NO_MATCH"


NO_MATCH = NoMatch()


@dataclass(frozen=True)
class PasswordAttempt:
    login_id: str
    secret: str = ""

    @property
    def is_email(self) -> bool:
        return "@" in self.login_id


@dataclass(frozen=True)
class OAuthAttempt:
    """Login with an email the OAuth provider has already verified."""

    email: str


Attempt = Union[PasswordAttempt, OAuthAttempt]
Resolution = Union[IdentityBase, NoMatch]


class Strategy(Protocol):
    name: str

    async def try_resolve(self, attempt: Attempt) -> Resolution:
        ...


def client_identity(client: ClientRecord) -> ClientIdentity:
    return ClientIdentity(
        uid=client.id,
        email=client.email,
        display_name=client.name,
        client_id=client.id,
    )


def branch_identity(branch: BranchRecord) -> BranchManagerIdentity:
    return BranchManagerIdentity(
        uid=branch.id,
        email=branch.email,
        display_name=f"{branch.name} (Manager)",
        allowed_branch_ids=frozenset({branch.id}),
    )


def staff_identity(user: StaffUserRecord) -> StaffIdentity:
    return StaffIdentity(
        uid=user.uid,
        email=user.email,
        display_name=user.display_name,
        role=user.role,
        allowed_branch_ids=frozenset(user.allowed_branch_ids),
        employee_id=user.employee_id,
    )


class ClientPortalStrategy:
    """Client id + portal password. Password logins with an ``@`` never apply."""

    name = "client"

    def __init__(self, store: DirectoryStore):
        self.store = store

    async def try_resolve(self, attempt: Attempt) -> Resolution:
        if isinstance(attempt, PasswordAttempt):
            if attempt.is_email:
                return NO_MATCH
            predicates = [("id", attempt.login_id), ("portalPassword", attempt.secret)]
        else:
            predicates = [("email", attempt.email)]

        matches = await self.store.query_equals(CLIENTS, predicates)
        if not matches:
            return NO_MATCH

        client = ClientRecord.model_validate(matches[0])
        if not client.portal_access:
            raise AccessDisabled()
        return client_identity(client)


class BranchPortalStrategy:
    """Branch portal username + password; scoped to that one branch."""

    name = "branch"

    def __init__(self, store: DirectoryStore):
        self.store = store

    async def try_resolve(self, attempt: Attempt) -> Resolution:
        if isinstance(attempt, PasswordAttempt):
            predicates = [("portalUsername", attempt.login_id), ("portalPassword", attempt.secret)]
        else:
            predicates = [("email", attempt.email)]

        matches = await self.store.query_equals(BRANCHES, predicates)
        if not matches:
            return NO_MATCH
        return branch_identity(BranchRecord.model_validate(matches[0]))


class StaffDirectoryStrategy:
    """Staff user by email or employee id, plus password."""

    name = "staff"

    def __init__(self, store: DirectoryStore):
        self.store = store

    async def try_resolve(self, attempt: Attempt) -> Resolution:
        if isinstance(attempt, PasswordAttempt):
            matches = await self.store.query_equals(
                USERS, [("email", attempt.login_id), ("password", attempt.secret)]
            )
            if not matches:
                matches = await self.store.query_equals(
                    USERS, [("employeeId", attempt.login_id), ("password", attempt.secret)]
                )
        else:
            matches = await self.store.query_equals(USERS, [("email", attempt.email)])

        if not matches:
            return NO_MATCH

        try:
            return staff_identity(StaffUserRecord.model_validate(matches[0]))
        except ValidationError as e:
            # The record matched but cannot produce an identity; do not fall through
            logger.warning("Staff user record %s is malformed: %s", matches[0].get("uid"), e)
            raise InvalidCredentials() from e


class ProviderFallbackStrategy:
    """
    Delegated email/password sign-in; success is an implicit Admin.

    Only password attempts with an email login id reach the provider, and
    OAuth attempts never do.
    """

    name = "provider"

    def __init__(self, provider: AuthProvider):
        self.provider = provider

    async def try_resolve(self, attempt: Attempt) -> Resolution:
        if not isinstance(attempt, PasswordAttempt) or not attempt.is_email:
            return NO_MATCH

        account = await self.provider.sign_in_with_password(attempt.login_id, attempt.secret)
        return AdminFallbackIdentity(
            uid=account.uid,
            email=account.email or attempt.login_id,
            display_name=account.display_name or "Administrator",
            provider_token=account.refresh_token,
        )


class CredentialResolver:
    """
    Resolve login attempts to exactly one identity.

    Password logins run client, branch, staff and provider strategies in
    that order. OAuth logins run only the three directory strategies.
    """

    def __init__(
        self,
        store: DirectoryStore,
        provider: AuthProvider,
        password_strategies: Optional[Sequence[Strategy]] = None,
        oauth_strategies: Optional[Sequence[Strategy]] = None,
    ):
        self.store = store
        self.provider = provider
        directory_strategies = [
            ClientPortalStrategy(store),
            BranchPortalStrategy(store),
            StaffDirectoryStrategy(store),
        ]
        self.password_strategies = list(
            password_strategies
            if password_strategies is not None
            else directory_strategies + [ProviderFallbackStrategy(provider)]
        )
        self.oauth_strategies = list(
            oauth_strategies if oauth_strategies is not None else directory_strategies
        )

    async def resolve(self, login_id: str, secret: str) -> IdentityBase:
        """
        Resolve a login id and secret.

        Raises:
            InvalidCredentials: Empty input, or no strategy matched
            AccessDisabled: Matched a client with portal access off
            ProviderError: Provider or directory failure
        """
        attempt = PasswordAttempt(login_id=(login_id or "").strip(), secret=(secret or "").strip())
        if not attempt.login_id or not attempt.secret:
            raise InvalidCredentials()
        return await self._run(attempt, self.password_strategies, InvalidCredentials())

    async def resolve_verified_email(self, email: str) -> IdentityBase:
        """Resolve an email the OAuth provider has verified."""
        attempt = OAuthAttempt(email=(email or "").strip())
        if not attempt.email:
            raise ProviderError("No email address linked to this provider account.")
        return await self._run(attempt, self.oauth_strategies, InvalidCredentials(EMAIL_NOT_REGISTERED))

    async def resolve_oauth(self, id_token: str) -> IdentityBase:
        """
        Verify an OAuth id token and resolve its email.

        The provider session is signed out whatever the outcome, so a
        failed lookup never leaves a provider token without an internal
        identity.
        """
        account: Optional[ProviderAccount] = None
        try:
            account = await self.provider.verify_oauth_token(id_token)
            return await self.resolve_verified_email(account.email or "")
        finally:
            await self.provider.sign_out(account)

    async def _run(self, attempt: Attempt, strategies: Sequence[Strategy], failure: Exception) -> IdentityBase:
        for strategy in strategies:
            try:
                result = await strategy.try_resolve(attempt)
            except SQLAlchemyError as e:
                logger.error("Directory lookup failed during login: %s", e)
                raise ProviderError() from e
            if not isinstance(result, NoMatch):
                logger.debug("Login resolved by %s strategy", strategy.name)
                return result
        raise failure
