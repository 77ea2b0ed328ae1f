"""
Answer pipeline entry point.

A request ends in one of two states:

- GROUNDED: retrieval ran (possibly finding nothing), the enriched prompt
  was answered, and confidence reflects retrieval quality.
- FALLBACK: anything on the grounded path failed; the bare query is sent
  to the completion service with no context and confidence is fixed at 0.3.
  Errors from the fallback call propagate to the caller.
"""

import asyncio

from ..logger import logger
from ..schemas import AnswerMode, ChatMessage, RAGContext, RAGRequest, RAGResponse
from .context import (
    FALLBACK_CONFIDENCE,
    FALLBACK_CONTEXT_SUMMARY,
    build_messages,
    calculate_confidence,
    format_context_summary,
)
from .deps import RAGDeps
from .retrieval import retrieve_context
from .stats import store_conversation_context

# Strong references to in-flight context writes until they finish
_background_tasks: set[asyncio.Task] = set()


class RAGService:
    """Answers travel questions from the knowledge base."""

    def __init__(self, deps: RAGDeps):
        self.deps = deps

    async def generate_answer(self, request: RAGRequest) -> RAGResponse:
        """
        Answer a query, grounded in retrieved content when possible.

        Args:
            request: Validated request (query must be non-empty)

        Returns:
            Grounded response with sources, or fallback response with none

        Raises:
            CompassError: Only when the fallback completion itself fails
        """
        logger.info(f"Processing RAG query: '{request.query[:80]}'")

        answer = await self.grounded_answer(request)
        if answer is None:
            answer = await self.fallback_answer(request)

        logger.info(
            f"RAG response ({answer.mode.value}) with {len(answer.sources)} sources "
            f"(confidence: {answer.confidence:.2f})"
        )
        return answer

    async def grounded_answer(self, request: RAGRequest) -> RAGResponse | None:
        """Run retrieval and generation; None means the pipeline must fall back."""
        try:
            context = await retrieve_context(request, self.deps)
            messages = build_messages(
                request.query,
                context,
                location=request.location,
                include_history=bool(request.include_history and request.conversation_id),
            )
            response = await self.deps.completion_client.complete(
                messages, location=request.location
            )
            confidence = calculate_confidence(context.retrieved_content, request.query)
            context_used = format_context_summary(context.retrieved_content)
        except Exception as e:
            logger.error(f"Error generating RAG response: {str(e)}", exc_info=True)
            return None

        if request.conversation_id and context.query_embedding:
            self.schedule_context_store(request.conversation_id, context)

        return RAGResponse(
            response=response,
            sources=context.retrieved_content,
            context_used=context_used,
            confidence=confidence,
            mode=AnswerMode.GROUNDED,
        )

    async def fallback_answer(self, request: RAGRequest) -> RAGResponse:
        """Answer the bare query with no retrieved context."""
        logger.warning("Falling back to plain completion without context")
        response = await self.deps.completion_client.complete(
            [ChatMessage(role="user", content=request.query)],
            location=request.location,
        )
        return RAGResponse(
            response=response,
            sources=[],
            context_used=FALLBACK_CONTEXT_SUMMARY,
            confidence=FALLBACK_CONFIDENCE,
            mode=AnswerMode.FALLBACK,
        )

    def schedule_context_store(self, conversation_id: str, context: RAGContext) -> asyncio.Task:
        """Write the context record in the background without delaying the answer."""
        task = asyncio.create_task(
            store_conversation_context(
                conversation_id,
                context.retrieved_content,
                context.query_embedding,
                session_factory=self.deps.session_factory,
            )
        )
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)
        return task
