"""Shared fixtures for the knowledge API tests.

Tests run against an in-memory SQLite database. Vector similarity queries
are PostgreSQL-only, so anything that reaches pgvector falls back to text
search here, which is also the path most tests care about.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from compass_api import vector_models  # noqa: E402,F401
from compass_api.completion import CompletionClient  # noqa: E402
from compass_api.config import settings  # noqa: E402
from compass_api.database import Base  # noqa: E402
from compass_api.embeddings import EmbeddingService  # noqa: E402
from compass_api.rag import RAGDeps  # noqa: E402
from compass_api.schemas import ContentMetadata, ContentRecord  # noqa: E402
from compass_api.vector_store import VectorStore  # noqa: E402


@pytest.fixture
def engine():
    """Fresh in-memory database per test, shared across sessions."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def query_embedding():
    return [0.1] * settings.embedding_dimensions


@pytest.fixture
def make_record():
    """Factory for ContentRecord values as returned by the vector store."""

    def _make(
        title: str = "Temple etiquette",
        content: str = "Bow at the gate and walk along the side of the path.",
        content_type: str = "customs",
        similarity: float | None = 0.8,
        location: str | None = "Kyoto",
        record_id: str | None = None,
    ) -> ContentRecord:
        return ContentRecord(
            id=record_id or f"id-{title.lower().replace(' ', '-')}",
            content_id=f"src-{title.lower().replace(' ', '-')}",
            content_type=content_type,
            title=title,
            content=content,
            metadata=ContentMetadata(location=location),
            similarity=similarity,
            created_at=datetime(2024, 1, 1),
            updated_at=datetime(2024, 1, 1),
        )

    return _make


@pytest.fixture
def mock_embedding_service(query_embedding):
    service = MagicMock(spec=EmbeddingService)
    service.generate = AsyncMock(return_value=query_embedding)
    service.test_connection = AsyncMock(
        return_value={"status": "success", "message": "Embeddings service connected successfully"}
    )
    return service


@pytest.fixture
def mock_vector_store(mock_embedding_service):
    store = MagicMock(spec=VectorStore)
    store.embedding_service = mock_embedding_service
    store.search_similar = AsyncMock(return_value=[])
    store.text_search = MagicMock(return_value=[])
    return store


@pytest.fixture
def mock_completion_client():
    client = MagicMock(spec=CompletionClient)
    client.is_configured = True
    client.complete = AsyncMock(return_value="Here is what you should know.")
    return client


@pytest.fixture
def rag_deps(mock_vector_store, mock_completion_client, mock_embedding_service, session_factory):
    return RAGDeps(
        db=MagicMock(),
        vector_store=mock_vector_store,
        completion_client=mock_completion_client,
        embedding_service=mock_embedding_service,
        session_factory=session_factory,
    )
