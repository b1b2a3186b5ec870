"""
Session persistence with revalidation.

A persisted session is a single blob holding the identity as JSON. On
restore the blob is only used to find the canonical record; the identity
handed back is always rebuilt from that fresh record, so changes made
since login (portal access revoked, employee id migrated, branch scope
edited) take effect without a new login.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Protocol

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from backoffice.fastapi.core.init_settings import global_settings
from backoffice.fastapi.crud.directory import DirectoryStore
from backoffice.fastapi.schemas.directory import (
    BRANCHES, CLIENTS, USERS,
    BranchRecord, ClientRecord, StaffUserRecord,
)
from backoffice.fastapi.schemas.identity import (
    AdminFallbackIdentity, BranchManagerIdentity, ClientIdentity,
    IdentityBase, StaffIdentity, identity_from_json, identity_to_json,
)
from backoffice.fastapi.services.credentials import branch_identity, client_identity, staff_identity
from backoffice.security.auth import create_session_token, decode_session_token
from backoffice.security.errors import ProviderError, RecordNotFound
from backoffice.security.provider import AuthProvider

logger = logging.getLogger(__name__)


class SessionBlob(Protocol):
    """Storage for the one serialized identity of a session."""

    async def read(self) -> Optional[str]:
        ...

    async def write(self, blob: str, remember: bool) -> None:
        ...

    async def delete(self) -> None:
        ...


class FileSessionBlob:
    """
    Session blob kept in a named local file.

    Without ``remember`` nothing is written to disk and any earlier file
    is removed, so the session ends with the process.
    """

    def __init__(self, path: Optional[str | Path] = None):
        self.path = Path(path or global_settings.SESSION_FILE_PATH)

    async def read(self) -> Optional[str]:
        def _read():
            return self.path.read_text(encoding="utf-8") if self.path.exists() else None
        return await asyncio.to_thread(_read)

    async def write(self, blob: str, remember: bool) -> None:
        if not remember:
            await self.delete()
            return
        await asyncio.to_thread(self.path.write_text, blob, "utf-8")

    async def delete(self) -> None:
        await asyncio.to_thread(self.path.unlink, True)


class TokenSessionBlob:
    """
    Session blob carried by the HTTP client as a signed token.

    ``token`` holds the token to hand back after ``write`` and is None
    after ``delete``; the client is expected to drop its copy then.
    """

    def __init__(self, token: Optional[str] = None):
        self.token = token

    async def read(self) -> Optional[str]:
        if not self.token:
            return None
        return decode_session_token(self.token)

    async def write(self, blob: str, remember: bool) -> None:
        self.token = create_session_token(blob, remember=remember)

    async def delete(self) -> None:
        self.token = None


class SessionStore:
    """
    The process- or request-scoped auth session.

    Constructed once with the directory and a blob backend and injected
    into every consumer.
    """

    def __init__(self, store: DirectoryStore, blob: SessionBlob, provider: Optional[AuthProvider] = None):
        self.store = store
        self.blob = blob
        self.provider = provider
        self._current: Optional[IdentityBase] = None

    @property
    def current(self) -> Optional[IdentityBase]:
        """Identity of the last persist or successful restore."""
        return self._current

    async def persist(self, identity: IdentityBase, remember: bool) -> None:
        self._current = identity
        await self.blob.write(identity_to_json(identity), remember)

    async def clear(self) -> None:
        self._current = None
        await self.blob.delete()

    async def restore(self) -> Optional[IdentityBase]:
        """
        Restore and revalidate the persisted identity.

        Returns:
            An identity rebuilt from the canonical record, or None. When
            the record is gone or no longer permits access, the stored
            session is cleared as well. A directory or provider outage
            returns None but keeps the stored session for a later retry.
        """
        raw = await self.blob.read()
        if raw is None:
            cached = self._current
        else:
            try:
                cached = identity_from_json(raw)
            except (ValidationError, ValueError) as e:
                logger.warning("Discarding unreadable session blob: %s", e)
                await self.clear()
                return None

        if cached is None:
            return None

        try:
            fresh = await self.revalidate(cached)
        except RecordNotFound as e:
            logger.info("Session for %s %s cleared: %s", cached.origin.value, cached.uid, e.message)
            await self.clear()
            return None
        except (SQLAlchemyError, ProviderError) as e:
            logger.warning("Could not revalidate session for %s: %s", cached.uid, e)
            self._current = None
            return None

        self._current = fresh
        return fresh

    async def revalidate(self, identity: IdentityBase) -> IdentityBase:
        """
        Rebuild an identity from its canonical record.

        Raises:
            RecordNotFound: The record is missing or no longer permits access
        """
        if isinstance(identity, ClientIdentity):
            document = await self.store.get_by_id(CLIENTS, identity.uid)
            if document is None:
                raise RecordNotFound("client record missing")
            client = ClientRecord.model_validate(document)
            if not client.portal_access:
                raise RecordNotFound("client portal access disabled")
            return client_identity(client)

        if isinstance(identity, BranchManagerIdentity):
            document = await self.store.get_by_id(BRANCHES, identity.uid)
            if document is None:
                raise RecordNotFound("branch record missing")
            branch = BranchRecord.model_validate(document)
            if not branch.portal_username:
                raise RecordNotFound("branch portal login removed")
            return branch_identity(branch)

        if isinstance(identity, StaffIdentity):
            document = await self.store.get_by_id(USERS, identity.uid)
            if document is None:
                raise RecordNotFound("staff user record missing")
            try:
                return staff_identity(StaffUserRecord.model_validate(document))
            except ValidationError as e:
                raise RecordNotFound("staff user record malformed") from e

        if isinstance(identity, AdminFallbackIdentity):
            if self.provider is None or not identity.provider_token:
                raise RecordNotFound("no provider session to revalidate")
            account = await self.provider.refresh(identity.provider_token)
            if account is None or account.uid != identity.uid:
                raise RecordNotFound("provider session revoked")
            return identity.model_copy(update={"provider_token": account.refresh_token})

        raise TypeError(f"Unknown identity variant: {type(identity).__name__}")
