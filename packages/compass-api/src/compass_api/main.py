from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from .completion import CompletionClient, create_completion_client
from .config import settings
from .database import SessionLocal, get_db, init_db, save_message
from .embeddings import EmbeddingService, create_embedding_service
from .exceptions import CompassError, ContentNotFoundError
from .logger import logger
from .rag import RAGDeps, RAGService, get_rag_stats, get_recent_turns
from .schemas import (
    ClearContentResponse,
    ContentCreate,
    ContentRecord,
    ContentUpdate,
    ConversationTurn,
    IngestionResult,
    RAGRequest,
    RAGResponse,
    SaveMessageRequest,
    VectorSearchRequest,
    VectorSearchResponse,
    VectorStatsResponse,
)
from .vector_store import VectorStore


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database and external service clients on startup"""
    logger.info("Starting CulturalCompass knowledge API...")

    init_db()

    app.state.embedding_service = create_embedding_service(settings.gemini_api_key)
    app.state.completion_client = create_completion_client(settings.groq_api_key)

    logger.info("=" * 60)
    logger.info("Knowledge API is ready!")
    logger.info("   Swagger UI: http://localhost:8000/docs")
    logger.info("=" * 60)

    yield

    logger.info("Shutting down knowledge API...")


app = FastAPI(
    title="CulturalCompass Knowledge API",
    version="1.0.0",
    description="""
    ## CulturalCompass Knowledge API

    Retrieval-augmented answers to travel and cultural questions.

    ### Features
    - 🔍 **Grounded answers** with sources and a confidence estimate
    - 📚 **Knowledge base** of destination, customs, laws and events records (pgvector)
    - 💬 **Conversation history** folded into answers on request
    """,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.cors_origins.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_embedding_service(request: Request) -> EmbeddingService | None:
    return getattr(request.app.state, "embedding_service", None)


def get_completion_client(request: Request) -> CompletionClient:
    client = getattr(request.app.state, "completion_client", None)
    return client or create_completion_client(settings.groq_api_key)


def get_vector_store(
    db: Session = Depends(get_db),
    embedding_service: EmbeddingService | None = Depends(get_embedding_service),
) -> VectorStore:
    return VectorStore(db, embedding_service)


def get_rag_service(
    db: Session = Depends(get_db),
    vector_store: VectorStore = Depends(get_vector_store),
    completion_client: CompletionClient = Depends(get_completion_client),
    embedding_service: EmbeddingService | None = Depends(get_embedding_service),
) -> RAGService:
    return RAGService(
        RAGDeps(
            db=db,
            vector_store=vector_store,
            completion_client=completion_client,
            embedding_service=embedding_service,
            session_factory=SessionLocal,
        )
    )


@app.get("/health", tags=["Health"])
async def health():
    """Health check endpoint"""
    return {"status": "healthy"}


@app.post("/rag/search", response_model=RAGResponse, tags=["RAG"])
async def rag_search(request: RAGRequest, service: RAGService = Depends(get_rag_service)):
    """
    Answer a travel question grounded in the knowledge base.

    Falls back to an ungrounded answer (confidence 0.3, no sources) when
    retrieval or generation fails; errors only surface when that fallback
    fails too.
    """
    try:
        return await service.generate_answer(request)
    except CompassError as e:
        logger.error(f"RAG search failed: {e.message}")
        raise HTTPException(status_code=e.status_code or 500, detail=e.message)
    except Exception as e:
        logger.error(f"RAG search error: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="RAG search failed")


@app.post("/vector/search", response_model=VectorSearchResponse, tags=["Knowledge Base"])
async def vector_search(
    request: VectorSearchRequest, vector_store: VectorStore = Depends(get_vector_store)
):
    """Similarity search over the knowledge base"""
    results = await vector_store.search_similar(
        request.query,
        limit=request.limit,
        threshold=request.threshold,
        content_types=request.content_types,
        metadata={"location": request.location} if request.location else None,
    )
    avg_similarity = (
        sum(r.similarity or 0.0 for r in results) / len(results) if results else 0.0
    )
    return VectorSearchResponse(results=results, total=len(results), avg_similarity=avg_similarity)


@app.get("/vector/content", tags=["Knowledge Base"])
async def list_content_by_type(
    content_type: str = Query(..., alias="contentType", min_length=1),
    limit: int = Query(20, ge=1, le=50),
    location: str | None = None,
    vector_store: VectorStore = Depends(get_vector_store),
):
    """List records of one content type, optionally for a location"""
    results = await vector_store.search_similar(
        content_type,
        limit=limit,
        threshold=0.1,
        content_types=[content_type],
        metadata={"location": location} if location else None,
    )
    return {
        "content": [r.model_dump(by_alias=True) for r in results],
        "total": len(results),
        "contentType": content_type,
    }


@app.post("/vector/content", tags=["Knowledge Base"])
async def add_content(
    content: ContentCreate, vector_store: VectorStore = Depends(get_vector_store)
):
    """Add a record to the knowledge base"""
    try:
        record_id = await vector_store.store_content(content)
        return {"success": True, "id": record_id}
    except Exception as e:
        logger.error(f"Error adding content: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to add content")


@app.post("/vector/ingest", response_model=IngestionResult, tags=["Knowledge Base"])
async def ingest_content(
    contents: list[ContentCreate], vector_store: VectorStore = Depends(get_vector_store)
):
    """Bulk-add records; the result lists stored ids and any shortfall"""
    return await vector_store.ingest_content(contents)


@app.delete("/vector/content", response_model=ClearContentResponse, tags=["Knowledge Base"])
async def clear_all_content(vector_store: VectorStore = Depends(get_vector_store)):
    """Delete every record in the knowledge base"""
    try:
        deleted = vector_store.clear_all_content()
        return ClearContentResponse(success=True, deleted_count=deleted)
    except Exception as e:
        logger.error(f"Error clearing content: {str(e)}", exc_info=True)
        return ClearContentResponse(success=False, deleted_count=0)


@app.patch("/vector/content/{record_id}", response_model=ContentRecord, tags=["Knowledge Base"])
async def update_content(
    record_id: str,
    updates: ContentUpdate,
    vector_store: VectorStore = Depends(get_vector_store),
):
    """Update a record; the embedding is regenerated when text changes"""
    try:
        return await vector_store.update_content(record_id, updates)
    except ContentNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except Exception as e:
        logger.error(f"Error updating content: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update content")


@app.delete("/vector/content/{record_id}", tags=["Knowledge Base"])
async def delete_content(record_id: str, vector_store: VectorStore = Depends(get_vector_store)):
    """Delete a record from the knowledge base"""
    try:
        vector_store.delete_content(record_id)
        return {"success": True}
    except ContentNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except Exception as e:
        logger.error(f"Error deleting content: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to delete content")


@app.get("/vector/stats", response_model=VectorStatsResponse, tags=["Knowledge Base"])
async def vector_stats(
    db: Session = Depends(get_db), vector_store: VectorStore = Depends(get_vector_store)
):
    """Knowledge base and query statistics"""
    return VectorStatsResponse(
        content=vector_store.get_content_stats(),
        rag=get_rag_stats(db, vector_store),
        timestamp=datetime.utcnow(),
    )


@app.get("/vector/status", tags=["Knowledge Base"])
async def vector_status(
    vector_store: VectorStore = Depends(get_vector_store),
    completion_client: CompletionClient = Depends(get_completion_client),
):
    """Report whether embeddings, the vector store and completion are usable"""
    if vector_store.embedding_service:
        embeddings = await vector_store.embedding_service.test_connection()
    else:
        embeddings = {
            "status": "demo",
            "message": "Embeddings service not configured - vector search disabled",
        }

    stats = vector_store.get_content_stats()
    store_status = {
        "status": "success" if stats.total_content > 0 else "empty",
        "message": f"Vector store contains {stats.total_content} documents",
        "stats": stats.model_dump(by_alias=True),
    }

    if embeddings["status"] == "success":
        overall = {
            "status": "success" if stats.total_content > 0 else "partial",
            "message": (
                "RAG system fully operational"
                if stats.total_content > 0
                else "RAG ready, needs content"
            ),
        }
    else:
        overall = {"status": "demo", "message": "RAG disabled - using text matching"}

    return {
        "embeddings": embeddings,
        "vectorStore": store_status,
        "completion": {
            "status": "success" if completion_client.is_configured else "demo",
            "message": (
                "Completion service configured"
                if completion_client.is_configured
                else "Completion service not configured"
            ),
        },
        "overall": overall,
    }


@app.post("/conversations/{conversation_id}/messages", tags=["Conversations"])
async def save_conversation_message(
    conversation_id: str, request: SaveMessageRequest, db: Session = Depends(get_db)
):
    """Save a conversation turn without generating an answer"""
    try:
        message = save_message(db, conversation_id, request.role, request.content)
        return {"status": "saved", "id": str(message.id)}
    except Exception as e:
        logger.error(f"Error saving message: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@app.get(
    "/conversations/{conversation_id}/messages",
    response_model=list[ConversationTurn],
    tags=["Conversations"],
)
async def get_conversation_messages(conversation_id: str, db: Session = Depends(get_db)):
    """Most recent turns of a conversation, oldest first"""
    return get_recent_turns(db, conversation_id, limit=settings.rag_history_limit)
