"""
RAG (Retrieval-Augmented Generation) module.

- Answer pipeline (RAGService, RAGDeps)
- Pure prompt assembly and confidence scoring (context)
- Context retrieval (retrieve_context) and history reading (get_recent_turns)
- Retrieval analytics (store_conversation_context, get_rag_stats)
"""

from .context import (
    build_enriched_prompt,
    build_messages,
    calculate_confidence,
    format_context_summary,
)
from .deps import RAGDeps
from .history import get_recent_turns
from .retrieval import retrieve_context
from .service import RAGService
from .stats import get_rag_stats, store_conversation_context

__all__ = [
    # Pipeline
    "RAGService",
    "RAGDeps",
    "retrieve_context",
    "get_recent_turns",
    # Pure helpers
    "build_enriched_prompt",
    "build_messages",
    "calculate_confidence",
    "format_context_summary",
    # Analytics
    "store_conversation_context",
    "get_rag_stats",
]
