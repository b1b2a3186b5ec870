"""
Document model backing every directory collection.

Clients, branches, staff users, employees, payroll records and migration
claims are all stored as JSON documents keyed by (collection, doc_id).
Field names inside ``data`` keep the camelCase spelling the portals use.
"""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON, Index

from backoffice.fastapi.dependencies.database import Base


class Document(Base):
    """
    A single document in a named collection.

    Attributes:
        collection: Collection name (e.g. 'clients', 'employees')
        doc_id: Document identifier, unique within its collection
        data: Document body as JSON
        created_at: When the document was first written
        updated_at: When the document was last written
    """

    __tablename__ = "documents"

    collection = Column(
        String(64),
        primary_key=True,
        doc="Collection the document belongs to"
    )

    doc_id = Column(
        String(128),
        primary_key=True,
        doc="Document identifier within the collection"
    )

    data = Column(
        JSON,
        nullable=False,
        default=dict,
        doc="Document body"
    )

    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
        doc="Document creation timestamp"
    )

    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
        doc="Last document write timestamp"
    )

    __table_args__ = (
        Index("idx_documents_collection", "collection"),
    )

    def __repr__(self) -> str:
        return f"<Document(collection='{self.collection}', doc_id='{self.doc_id}')>"
