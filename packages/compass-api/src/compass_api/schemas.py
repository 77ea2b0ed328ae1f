from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model exchanging camelCase JSON with the web client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ContentMetadata(CamelModel):
    """
    Metadata attached to a knowledge base record.

    The documented keys are optional; ingestion may add any other keys and
    they are preserved as-is.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    location: str | None = Field(None, description="City or place the record describes")
    country: str | None = Field(None, description="Country of the location")
    region: str | None = Field(None, description="Region or state of the location")
    language: str | None = Field(None, description="ISO-639-1 language of the content")
    source: str | None = Field(None, description="Name of the source the content came from")
    source_url: str | None = Field(None, description="URL of the source document")
    tags: list[str] | None = Field(None, description="Free-form topic tags")

    def as_filter(self) -> dict:
        """Return the set keys only, for JSON containment filters and storage."""
        return self.model_dump(exclude_none=True)


class ContentRecord(CamelModel):
    """A stored knowledge base entry, optionally scored against a query."""

    id: str
    content_id: str
    content_type: str
    title: str
    content: str
    metadata: ContentMetadata = Field(default_factory=ContentMetadata)
    similarity: float | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ConversationTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatMessage(BaseModel):
    """A message sent to the chat completion service."""

    role: Literal["system", "user", "assistant"]
    content: str


class AnswerMode(str, Enum):
    """Terminal state of the answer pipeline."""

    GROUNDED = "grounded"
    FALLBACK = "fallback"


class RAGRequest(CamelModel):
    query: str = Field(..., min_length=1, description="User's question")
    conversation_id: str | None = Field(None, description="Conversation to read history from")
    location: str | None = Field(None, description="Destination the question is about")
    max_context: int = Field(5, ge=1, le=10, description="Maximum number of sources to retrieve")
    content_types: list[str] | None = Field(None, description="Restrict sources to these types")
    include_history: bool = Field(
        False, description="Fold recent conversation turns into the prompt"
    )


class RAGContext(BaseModel):
    """Request-scoped retrieval results. Never persisted."""

    retrieved_content: list[ContentRecord] = Field(default_factory=list)
    conversation_history: list[ConversationTurn] | None = None
    location_context: str | None = None
    query_embedding: list[float] | None = None


class RAGResponse(CamelModel):
    response: str = Field(..., description="Generated answer")
    sources: list[ContentRecord] = Field(..., description="Records the answer was grounded in")
    context_used: str = Field(..., description="Human-readable summary of the retrieved context")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Heuristic retrieval-quality score")
    mode: AnswerMode = Field(AnswerMode.GROUNDED, description="grounded or fallback")


class VectorSearchRequest(CamelModel):
    query: str = Field(..., min_length=1)
    content_types: list[str] | None = None
    limit: int = Field(10, ge=1, le=20)
    threshold: float = Field(0.5, ge=0.0, le=1.0)
    location: str | None = None


class VectorSearchResponse(CamelModel):
    results: list[ContentRecord]
    total: int
    avg_similarity: float


class ContentCreate(CamelModel):
    """Request to add a record to the knowledge base"""

    content_id: str = Field(..., min_length=1)
    content_type: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    metadata: ContentMetadata | None = None
    embedding: list[float] | None = Field(None, description="Precomputed embedding, if any")


class ContentUpdate(CamelModel):
    """Partial update of a knowledge base record"""

    content_id: str | None = None
    content_type: str | None = None
    title: str | None = None
    content: str | None = None
    metadata: ContentMetadata | None = None


class ContentStats(CamelModel):
    total_content: int = 0
    content_types: dict[str, int] = Field(default_factory=dict)
    recent_content: int = 0


class ContentTypeCount(CamelModel):
    type: str
    count: int


class RAGStats(CamelModel):
    total_queries: int = 0
    avg_confidence: float = 0.0
    top_content_types: list[ContentTypeCount] = Field(default_factory=list)
    recent_activity: int = 0


class VectorStatsResponse(CamelModel):
    content: ContentStats
    rag: RAGStats
    timestamp: datetime


class SaveMessageRequest(BaseModel):
    """Request to save a conversation turn without generating an answer"""

    role: Literal["user", "assistant"] = Field(..., description="Who sent the message")
    content: str = Field(..., min_length=1, description="Message text")


class IngestionResult(CamelModel):
    """Outcome of a bulk ingestion: partial success reports success=False"""

    success: bool = True
    processed: int = 0
    errors: list[str] = Field(default_factory=list)
    content_ids: list[str] = Field(default_factory=list)


class ClearContentResponse(CamelModel):
    success: bool
    deleted_count: int
