"""
Context retrieval for the answer pipeline.

Each source of context is fault-isolated: a failure degrades that source to
an empty value and is logged, never raised. Vector search, conversation
history and location context run concurrently.
"""

import asyncio

from ..config import settings
from ..embeddings import TASK_RETRIEVAL_QUERY, require_embedding_service
from ..logger import logger
from ..schemas import ContentRecord, ConversationTurn, RAGContext, RAGRequest
from .context import TEXT_FALLBACK_LIMIT
from .deps import RAGDeps
from .history import get_recent_turns

LOCATION_CONTENT_TYPES = ["destination", "location_overview"]


def location_placeholder(location: str) -> str:
    return (
        f"Context for {location}: Please provide culturally appropriate advice "
        "for this destination."
    )


async def search_sources(request: RAGRequest, deps: RAGDeps) -> list[ContentRecord]:
    """Vector search for the query, constrained by type and location."""
    try:
        return await asyncio.wait_for(
            deps.vector_store.search_similar(
                request.query,
                limit=request.max_context or settings.rag_default_max_context,
                threshold=settings.rag_similarity_threshold,
                content_types=request.content_types,
                metadata={"location": request.location} if request.location else None,
            ),
            timeout=settings.search_timeout,
        )
    except Exception as e:
        logger.error(f"Knowledge base search failed: {str(e)}", exc_info=True)
        return []


async def embed_query(request: RAGRequest, deps: RAGDeps) -> list[float]:
    """Embed the query for the context record. Raises on any failure."""
    service = require_embedding_service(deps.embedding_service)
    return await asyncio.wait_for(
        service.generate(request.query, task_type=TASK_RETRIEVAL_QUERY),
        timeout=settings.embedding_timeout,
    )


async def retrieve_sources(
    request: RAGRequest, deps: RAGDeps
) -> tuple[list[ContentRecord], list[float] | None]:
    """
    Run the vector search and the query embedding side by side.

    If the query cannot be embedded the search results are replaced by a
    substring match over titles and bodies (similarity 0.5 per hit).

    Returns:
        (sources, query_embedding or None)
    """
    sources, embedding = await asyncio.gather(
        search_sources(request, deps),
        embed_query(request, deps),
        return_exceptions=True,
    )
    if isinstance(sources, BaseException):
        raise sources

    if not isinstance(embedding, BaseException):
        return sources, embedding

    logger.info(f"Could not generate query embedding: {str(embedding)}")
    try:
        sources = deps.vector_store.text_search(
            request.query, limit=request.max_context or TEXT_FALLBACK_LIMIT
        )
    except Exception as e:
        logger.error(f"Fallback text search also failed: {str(e)}", exc_info=True)
    return sources, None


async def load_history(request: RAGRequest, deps: RAGDeps) -> list[ConversationTurn] | None:
    """Recent turns when history was requested for a known conversation."""
    if not (request.include_history and request.conversation_id):
        return None

    try:
        return get_recent_turns(deps.db, request.conversation_id, limit=settings.rag_history_limit)
    except Exception as e:
        logger.error(f"Could not retrieve conversation history: {str(e)}", exc_info=True)
        deps.db.rollback()
        return None


async def get_location_context(location: str | None, deps: RAGDeps) -> str | None:
    """
    Overview text for the location from destination records.

    Returns a generic placeholder when nothing matches and '' on error.
    """
    if not location:
        return None

    try:
        results = await asyncio.wait_for(
            deps.vector_store.search_similar(
                location,
                limit=settings.location_context_limit,
                threshold=settings.location_similarity_threshold,
                content_types=LOCATION_CONTENT_TYPES,
            ),
            timeout=settings.search_timeout,
        )
    except Exception as e:
        logger.error(f"Error getting location context: {str(e)}", exc_info=True)
        return ""

    if results:
        return "\n\n".join(result.content for result in results)
    return location_placeholder(location)


async def retrieve_context(request: RAGRequest, deps: RAGDeps) -> RAGContext:
    """Gather sources, history and location context for one request."""
    (sources, query_embedding), history, location_context = await asyncio.gather(
        retrieve_sources(request, deps),
        load_history(request, deps),
        get_location_context(request.location, deps),
    )

    logger.info(f"Retrieved {len(sources)} relevant documents")

    return RAGContext(
        retrieved_content=sources,
        conversation_history=history,
        location_context=location_context,
        query_embedding=query_embedding,
    )
