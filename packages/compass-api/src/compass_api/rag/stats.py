"""
Retrieval analytics: per-query context records and aggregate stats.
"""

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..database import SessionLocal
from ..logger import logger
from ..schemas import ContentRecord, ContentTypeCount, RAGStats
from ..vector_models import ConversationContext
from ..vector_store import VectorStore
from .context import average_similarity

TOP_CONTENT_TYPES = 5


def write_conversation_context(
    conversation_id: str,
    sources: list[ContentRecord],
    query_embedding: list[float] | None,
    session_factory: Callable[[], Session] | None = None,
) -> None:
    """Insert one context record on a fresh session; failures are only logged."""
    db = (session_factory or SessionLocal)()
    try:
        record = ConversationContext(
            conversation_id=conversation_id,
            query_embedding=query_embedding,
            retrieved_content_ids=[source.id for source in sources],
            relevance_score=average_similarity(sources),
        )
        db.add(record)
        db.commit()
        logger.info(
            f"Stored conversation context for {conversation_id} ({len(sources)} sources)"
        )
    except Exception as e:
        logger.error(f"Error storing conversation context: {str(e)}", exc_info=True)
        db.rollback()
    finally:
        db.close()


async def store_conversation_context(
    conversation_id: str,
    sources: list[ContentRecord],
    query_embedding: list[float] | None,
    session_factory: Callable[[], Session] | None = None,
) -> None:
    """
    Persist what was retrieved for a grounded answer.

    Best effort: runs after the answer was returned. The blocking write runs
    in a worker thread so a slow commit never holds up the event loop.
    """
    await asyncio.to_thread(
        write_conversation_context, conversation_id, sources, query_embedding, session_factory
    )


def get_rag_stats(db: Session, vector_store: VectorStore) -> RAGStats:
    """
    Aggregate query activity and the most common content types.

    Returns:
        RAGStats; all zeros if the database cannot be read
    """
    try:
        now = datetime.utcnow()
        total_queries = db.query(func.count(ConversationContext.id)).scalar() or 0
        recent_activity = (
            db.query(func.count(ConversationContext.id))
            .filter(ConversationContext.created_at >= now - timedelta(hours=24))
            .scalar()
            or 0
        )
        avg_confidence = (
            db.query(func.avg(ConversationContext.relevance_score))
            .filter(ConversationContext.created_at >= now - timedelta(days=7))
            .scalar()
        )
    except Exception as e:
        logger.error(f"Error getting RAG stats: {str(e)}", exc_info=True)
        db.rollback()
        return RAGStats()

    content_stats = vector_store.get_content_stats()
    top_content_types = sorted(
        (ContentTypeCount(type=t, count=c) for t, c in content_stats.content_types.items()),
        key=lambda entry: entry.count,
        reverse=True,
    )[:TOP_CONTENT_TYPES]

    return RAGStats(
        total_queries=total_queries,
        avg_confidence=float(avg_confidence or 0.0),
        top_content_types=top_content_types,
        recent_activity=recent_activity,
    )
