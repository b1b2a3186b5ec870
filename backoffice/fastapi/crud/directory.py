"""
Directory store operations.

This module provides the document store every identity component reads
from: point lookups, equality queries, single-document writes, atomic
multi-document batches and change notifications per collection.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Protocol, Sequence, Set, Tuple, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backoffice.fastapi.models.document import Document

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Create:
    """Insert a document; fails the batch if it already exists."""

    collection: str
    doc_id: str
    data: Dict[str, Any]


@dataclass(frozen=True)
class Update:
    """Merge fields into an existing document; fails the batch if it is missing."""

    collection: str
    doc_id: str
    fields: Dict[str, Any]


@dataclass(frozen=True)
class Delete:
    """Remove a document; deleting a missing document is a no-op."""

    collection: str
    doc_id: str


Mutation = Union[Create, Update, Delete]


@dataclass(frozen=True)
class SnapshotEvent:
    """Change notification for one collection."""

    collection: str
    changed_ids: Tuple[str, ...] = field(default_factory=tuple)


class BatchCommitError(Exception):
    """An atomic batch was rejected; none of its mutations were applied."""


class DirectoryStore(Protocol):
    async def get_by_id(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        ...

    async def query_equals(self, collection: str, predicates: Sequence[Tuple[str, Any]]) -> List[Dict[str, Any]]:
        ...

    async def list_all(self, collection: str) -> List[Dict[str, Any]]:
        ...

    async def put(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        ...

    async def delete(self, collection: str, doc_id: str) -> None:
        ...

    async def atomic_batch(self, mutations: Sequence[Mutation]) -> None:
        ...

    def watch(self, collection: str) -> AsyncIterator[SnapshotEvent]:
        ...


def _json_predicate(field_name: str, value: Any):
    """Compile an equality predicate on a JSON field, or None if it must be checked in Python."""
    element = Document.data[field_name]
    if isinstance(value, bool):
        return element.as_boolean() == value
    if isinstance(value, int):
        return element.as_integer() == value
    if isinstance(value, str):
        return element.as_string() == value
    return None


class SqlDirectoryStore:
    """
    DirectoryStore backed by the ``documents`` table.

    Every operation runs in its own session. ``atomic_batch`` applies all
    mutations inside one transaction, so either every mutation is visible
    after commit or none is.
    """

    def __init__(self, session_factory: async_sessionmaker):
        """Initialize with an async session factory."""
        self.session_factory = session_factory
        self._watchers: Dict[str, Set[asyncio.Queue]] = defaultdict(set)

    async def get_by_id(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """
        Get a document by id.

        Args:
            collection: Collection name
            doc_id: Document id

        Returns:
            A copy of the document body, or None if it does not exist
        """
        async with self.session_factory() as db:
            document = await db.get(Document, (collection, doc_id))
            return dict(document.data) if document else None

    async def query_equals(self, collection: str, predicates: Sequence[Tuple[str, Any]]) -> List[Dict[str, Any]]:
        """
        Find documents whose fields equal every given value.

        Results are ordered by document id so callers that take the first
        match resolve deterministically.

        Args:
            collection: Collection name
            predicates: (field, value) pairs, all of which must match

        Returns:
            Matching document bodies
        """
        query = select(Document).where(Document.collection == collection)
        residual = []
        for field_name, value in predicates:
            clause = _json_predicate(field_name, value)
            if clause is None:
                residual.append((field_name, value))
            else:
                query = query.where(clause)

        async with self.session_factory() as db:
            result = await db.execute(query.order_by(Document.doc_id))
            documents = [dict(doc.data) for doc in result.scalars().all()]

        return [
            doc for doc in documents
            if all(doc.get(name) == value for name, value in residual)
        ]

    async def list_all(self, collection: str) -> List[Dict[str, Any]]:
        """Get every document of a collection, ordered by document id."""
        async with self.session_factory() as db:
            result = await db.execute(
                select(Document)
                .where(Document.collection == collection)
                .order_by(Document.doc_id)
            )
            return [dict(doc.data) for doc in result.scalars().all()]

    async def put(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Create or fully replace a document."""
        async with self.session_factory() as db:
            async with db.begin():
                document = await db.get(Document, (collection, doc_id))
                if document is None:
                    db.add(Document(collection=collection, doc_id=doc_id, data=dict(data)))
                else:
                    document.data = dict(data)
        self._publish({collection: [doc_id]})

    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document if it exists."""
        async with self.session_factory() as db:
            async with db.begin():
                document = await db.get(Document, (collection, doc_id))
                if document is None:
                    return
                await db.delete(document)
        self._publish({collection: [doc_id]})

    async def atomic_batch(self, mutations: Sequence[Mutation]) -> None:
        """
        Apply mutations in one transaction.

        Args:
            mutations: Create, Update and Delete operations, applied in order

        Raises:
            BatchCommitError: If any mutation is rejected or the commit fails;
                the transaction is rolled back in that case
        """
        if not mutations:
            return

        try:
            async with self.session_factory() as db:
                async with db.begin():
                    for mutation in mutations:
                        await self._apply(db, mutation)
                        await db.flush()
        except SQLAlchemyError as e:
            raise BatchCommitError(f"Batch of {len(mutations)} mutations failed: {e}") from e

        changed: Dict[str, List[str]] = defaultdict(list)
        for mutation in mutations:
            changed[mutation.collection].append(mutation.doc_id)
        self._publish(changed)

    async def _apply(self, db: AsyncSession, mutation: Mutation) -> None:
        document = await db.get(Document, (mutation.collection, mutation.doc_id))

        if isinstance(mutation, Create):
            if document is not None:
                raise BatchCommitError(
                    f"Document {mutation.collection}/{mutation.doc_id} already exists"
                )
            db.add(Document(
                collection=mutation.collection,
                doc_id=mutation.doc_id,
                data=dict(mutation.data),
            ))
        elif isinstance(mutation, Update):
            if document is None:
                raise BatchCommitError(
                    f"Document {mutation.collection}/{mutation.doc_id} does not exist"
                )
            # Reassign so the JSON column registers the change
            document.data = {**document.data, **mutation.fields}
        elif isinstance(mutation, Delete):
            if document is not None:
                await db.delete(document)
        else:
            raise TypeError(f"Unknown mutation type: {type(mutation).__name__}")

    async def watch(self, collection: str) -> AsyncIterator[SnapshotEvent]:
        """
        Stream change notifications for a collection.

        The first event is an initial snapshot with no changed ids; every
        later event follows a committed write to the collection.
        """
        queue: asyncio.Queue = asyncio.Queue()
        self._watchers[collection].add(queue)
        try:
            yield SnapshotEvent(collection)
            while True:
                yield await queue.get()
        finally:
            self._watchers[collection].discard(queue)

    def _publish(self, changed: Dict[str, Iterable[str]]) -> None:
        for collection, doc_ids in changed.items():
            watchers = self._watchers.get(collection)
            if not watchers:
                continue
            event = SnapshotEvent(collection, tuple(doc_ids))
            for queue in list(watchers):
                queue.put_nowait(event)
