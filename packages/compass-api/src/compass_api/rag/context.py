"""
Prompt assembly and confidence scoring for grounded answers.

Pure functions only: given the retrieval results for one request they build
the completion messages, the human-readable context summary and the
heuristic confidence. The weights, caps and similarity floors used across
the pipeline are ad hoc tuning constants, not a calibrated model.
"""

from decimal import ROUND_HALF_UP, Decimal

from ..schemas import ChatMessage, ContentRecord, ConversationTurn, RAGContext

# Confidence heuristic
NO_SOURCES_CONFIDENCE = 0.2
FALLBACK_CONFIDENCE = 0.3
CONFIDENCE_BASE = 0.3
SIMILARITY_WEIGHT = 0.5
SOURCE_COUNT_WEIGHT = 0.15
SOURCE_COUNT_SATURATION = 5
QUERY_LENGTH_WEIGHT = 0.05
QUERY_LENGTH_SATURATION = 100
MAX_CONFIDENCE = 0.95

# History folding
HISTORY_FETCH_LIMIT = 8
HISTORY_PROMPT_TURNS = 4
PREVIOUS_RESPONSE_PREFIX = "Previous response: "

# Substring fallback when the query cannot be embedded
TEXT_FALLBACK_LIMIT = 3

NO_CONTEXT_SUMMARY = "No specific context found in knowledge base"
FALLBACK_CONTEXT_SUMMARY = "No additional context available"

SYSTEM_PREAMBLE = (
    "You are CulturalCompass AI with access to a comprehensive knowledge base. "
    "Use the provided context to give accurate, detailed responses about travel "
    "and cultural topics."
)

PROMPT_INSTRUCTIONS = """Instructions:
- Use the provided context to give accurate, detailed answers
- If the context doesn't contain relevant information, acknowledge this and provide general guidance
- Cite specific sources when referencing the context
- Maintain a helpful, culturally sensitive tone
- Focus on practical, actionable advice for travelers

Please provide a comprehensive response to the user's query."""


def average_similarity(sources: list[ContentRecord]) -> float:
    """Mean similarity of the sources; missing scores count as 0."""
    if not sources:
        return 0.0
    return sum(source.similarity or 0.0 for source in sources) / len(sources)


def calculate_confidence(sources: list[ContentRecord], query: str) -> float:
    """
    Score how well-grounded an answer is from retrieval quality alone.

    0.2 with no sources; otherwise 0.3 plus weighted terms for mean
    similarity, source count (saturating at 5) and query length (saturating
    at 100 characters), capped at 0.95.
    """
    if not sources:
        return NO_SOURCES_CONFIDENCE

    source_count_term = min(len(sources) / SOURCE_COUNT_SATURATION, 1)
    query_length_term = min(len(query) / QUERY_LENGTH_SATURATION, 1)

    confidence = (
        CONFIDENCE_BASE
        + average_similarity(sources) * SIMILARITY_WEIGHT
        + source_count_term * SOURCE_COUNT_WEIGHT
        + query_length_term * QUERY_LENGTH_WEIGHT
    )
    return min(confidence, MAX_CONFIDENCE)


def format_score(value: float) -> str:
    """Two decimals with ties rounded up (0.625 -> "0.63"), from the exact binary value."""
    return str(Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def format_context_summary(sources: list[ContentRecord]) -> str:
    """Summarize the sources for the `contextUsed` field."""
    if not sources:
        return NO_CONTEXT_SUMMARY

    # Distinct types in first-seen order
    types = list(dict.fromkeys(source.content_type for source in sources))
    return (
        f"Retrieved {len(sources)} relevant documents ({', '.join(types)}) "
        f"with average similarity: {format_score(average_similarity(sources))}"
    )


def format_source(index: int, source: ContentRecord) -> str:
    similarity = source.similarity or 0.0
    return (
        f"Source {index} ({source.content_type}, similarity: {format_score(similarity)}):\n"
        f"Title: {source.title}\n"
        f"Content: {source.content}\n"
    )


def build_enriched_prompt(query: str, context: RAGContext, location: str | None = None) -> str:
    """
    Build the user prompt: query, numbered sources, optional location
    context, then the fixed instruction block.
    """
    parts = [f"User Query: {query}\n"]

    if context.retrieved_content:
        parts.append("Relevant Information from Knowledge Base:\n")
        for i, source in enumerate(context.retrieved_content, 1):
            parts.append(format_source(i, source))

    if location and context.location_context:
        parts.append(f"Location Context for {location}:\n{context.location_context}\n")

    parts.append(PROMPT_INSTRUCTIONS)
    return "\n".join(parts)


def history_to_messages(history: list[ConversationTurn]) -> list[ChatMessage]:
    """
    Reframe the last few turns as user messages.

    Assistant turns are replayed as user messages prefixed with
    "Previous response: " so the completion service only sees system and
    user roles.
    """
    messages = []
    for turn in history[-HISTORY_PROMPT_TURNS:]:
        if turn.role == "user":
            messages.append(ChatMessage(role="user", content=turn.content))
        elif turn.role == "assistant":
            messages.append(
                ChatMessage(role="user", content=f"{PREVIOUS_RESPONSE_PREFIX}{turn.content}")
            )
    return messages


def build_messages(
    query: str,
    context: RAGContext,
    location: str | None = None,
    include_history: bool = False,
) -> list[ChatMessage]:
    """Assemble [system preamble, ...history, user: enriched prompt]."""
    messages = [ChatMessage(role="system", content=SYSTEM_PREAMBLE)]

    if include_history and context.conversation_history:
        messages.extend(history_to_messages(context.conversation_history))

    messages.append(
        ChatMessage(role="user", content=build_enriched_prompt(query, context, location))
    )
    return messages
