import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    String,
    Text,
    create_engine,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

from .config import settings
from .logger import logger


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


engine = create_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    title = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationship
    messages = relationship(
        "ConversationMessage",
        back_populates="conversation",
        cascade="all, delete-orphan",
    )


class ConversationMessage(Base):
    __tablename__ = "conversation_messages"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    conversation_id = Column(String, ForeignKey("conversations.id"), nullable=False, index=True)
    role = Column(String, nullable=False)  # 'user' or 'assistant'
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Relationship
    conversation = relationship("Conversation", back_populates="messages")


def init_db():
    """Initialize database tables"""
    logger.info("Initializing database...")

    # Vector columns need the pgvector extension; other backends skip it
    if engine.dialect.name == "postgresql":
        with engine.connect() as conn:
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            conn.commit()
        logger.info("pgvector extension enabled")

    # Register knowledge base tables on Base.metadata before create_all
    from . import vector_models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized successfully")


def get_db():
    """Get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_or_create_conversation(db, conversation_id: str, title: str = None) -> Conversation:
    """Get existing conversation or create a new one with the caller's id"""
    conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
    if not conversation:
        conversation = Conversation(id=conversation_id, title=title)
        db.add(conversation)
        db.commit()
        db.refresh(conversation)
        logger.info(f"Created new conversation: {conversation_id}")
    return conversation


def save_message(db, conversation_id: str, role: str, content: str) -> ConversationMessage:
    """Save a conversation turn, creating the conversation on first use"""
    conversation = get_or_create_conversation(db, conversation_id, title=content[:50])
    message = ConversationMessage(
        conversation_id=conversation.id,
        role=role,
        content=content,
    )
    db.add(message)
    db.commit()
    db.refresh(message)
    logger.info(f"Saved {role} message for conversation {conversation_id}")
    return message
