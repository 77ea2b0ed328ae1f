"""
Knowledge base database models.

Defines SQLAlchemy models for the vector content store and for the
per-query analytics records written after grounded answers.
"""

import uuid
from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import JSON, Column, DateTime, Float, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID

from .config import settings
from .database import Base

# JSONB on PostgreSQL so metadata filters can use @> containment
MetadataType = JSON().with_variant(JSONB(), "postgresql")


class VectorContent(Base):
    """
    A knowledge base record eligible for retrieval.

    Records are written by ingestion (seeding script or the content API) and
    only read by the answer pipeline.
    """

    __tablename__ = "vector_content"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    content_id = Column(String, nullable=False)  # External/source identifier
    content_type = Column(String, nullable=False)  # 'destination', 'customs', 'events', ...
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    content_metadata = Column("metadata", MetadataType, nullable=False, default=dict)
    embedding = Column(Vector(settings.embedding_dimensions), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_vector_content_type", "content_type"),
        Index("idx_vector_content_created_at", "created_at"),
        # HNSW index for similarity search - created manually after table creation
        # CREATE INDEX idx_vector_content_embedding ON vector_content USING hnsw (embedding vector_cosine_ops);
    )

    def __repr__(self):
        return f"<VectorContent(id={self.id}, type='{self.content_type}', title='{self.title}')>"


class ConversationContext(Base):
    """Retrieval snapshot stored for analysis after each grounded answer."""

    __tablename__ = "conversation_contexts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    conversation_id = Column(String, nullable=False, index=True)
    query_embedding = Column(Vector(settings.embedding_dimensions), nullable=True)
    retrieved_content_ids = Column(JSON, nullable=False, default=list)
    relevance_score = Column(Float, nullable=True)  # Mean similarity of the sources
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<ConversationContext(id={self.id}, conversation_id='{self.conversation_id}')>"
