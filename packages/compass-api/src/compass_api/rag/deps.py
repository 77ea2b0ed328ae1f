"""Shared dependencies for the answer pipeline."""

from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.orm import Session

from ..completion import CompletionClient
from ..embeddings import EmbeddingService
from ..vector_store import VectorStore


@dataclass
class RAGDeps:
    """
    Collaborators for one answer request.

    Built per request by the caller and passed explicitly instead of being
    looked up from module-level singletons.
    """

    db: Session
    vector_store: VectorStore
    completion_client: CompletionClient
    embedding_service: EmbeddingService | None = None
    # Opens a fresh session for writes that outlive the request
    session_factory: Callable[[], Session] | None = None
