"""
Conversation history reader.

Reads the most recent turns of a conversation for prompt folding.
"""

from sqlalchemy.orm import Session

from ..database import ConversationMessage
from ..logger import logger
from ..schemas import ConversationTurn
from .context import HISTORY_FETCH_LIMIT


def get_recent_turns(
    db: Session, conversation_id: str, limit: int = HISTORY_FETCH_LIMIT
) -> list[ConversationTurn]:
    """
    Fetch the newest turns of a conversation in chronological order.

    Args:
        db: Database session
        conversation_id: Conversation to read
        limit: Number of most recent turns to return

    Returns:
        Up to `limit` turns, oldest first
    """
    messages = (
        db.query(ConversationMessage)
        .filter(ConversationMessage.conversation_id == conversation_id)
        .order_by(ConversationMessage.created_at.desc())
        .limit(limit)
        .all()
    )

    # Reverse to get chronological order
    messages = list(reversed(messages))

    logger.info(f"Loaded {len(messages)} history turns for conversation {conversation_id}")

    return [
        ConversationTurn(role=msg.role, content=msg.content)
        for msg in messages
        if msg.role in ("user", "assistant")
    ]
