"""Tests for retrieval analytics."""

import asyncio
import time
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from compass_api.rag import get_rag_stats, store_conversation_context
from compass_api.vector_models import ConversationContext, VectorContent
from compass_api.vector_store import VectorStore


class TestStoreConversationContext:
    @pytest.mark.asyncio
    async def test_writes_record(self, session_factory, make_record, query_embedding):
        sources = [make_record(title="a", similarity=0.6), make_record(title="b", similarity=0.4)]

        await store_conversation_context(
            "conv-1", sources, query_embedding, session_factory=session_factory
        )

        session = session_factory()
        try:
            record = session.query(ConversationContext).one()
            assert record.retrieved_content_ids == ["id-a", "id-b"]
            assert record.relevance_score == pytest.approx(0.5)
        finally:
            session.close()

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, make_record):
        session = MagicMock()
        session.commit.side_effect = RuntimeError("disk full")

        await store_conversation_context("conv-1", [make_record()], None, lambda: session)

        session.rollback.assert_called_once()
        session.close.assert_called_once()


    @pytest.mark.asyncio
    async def test_slow_commit_runs_off_the_event_loop(self, make_record):
        session = MagicMock()
        session.commit.side_effect = lambda: time.sleep(0.3)
        gaps = []

        async def ticker():
            loop = asyncio.get_running_loop()
            last = loop.time()
            for _ in range(10):
                await asyncio.sleep(0.02)
                now = loop.time()
                gaps.append(now - last)
                last = now

        await asyncio.gather(
            store_conversation_context("conv-1", [make_record()], None, lambda: session),
            ticker(),
        )

        session.commit.assert_called_once()
        assert max(gaps) < 0.1


class TestRagStats:
    def test_aggregates(self, db_session):
        now = datetime.utcnow()
        db_session.add_all(
            [
                ConversationContext(conversation_id="c1", relevance_score=0.8, created_at=now),
                ConversationContext(
                    conversation_id="c1",
                    relevance_score=0.6,
                    created_at=now - timedelta(days=2),
                ),
                ConversationContext(
                    conversation_id="c2",
                    relevance_score=0.1,
                    created_at=now - timedelta(days=30),
                ),
            ]
        )
        for i, content_type in enumerate(
            ["customs"] * 3 + ["laws"] * 2 + ["events", "phrases", "destination", "etiquette"]
        ):
            db_session.add(
                VectorContent(
                    content_id=f"c{i}",
                    content_type=content_type,
                    title=f"Title {i}",
                    content="Body",
                    content_metadata={},
                )
            )
        db_session.commit()

        stats = get_rag_stats(db_session, VectorStore(db_session))

        assert stats.total_queries == 3
        assert stats.recent_activity == 1
        assert stats.avg_confidence == pytest.approx(0.7)
        assert len(stats.top_content_types) == 5
        assert [(t.type, t.count) for t in stats.top_content_types[:2]] == [
            ("customs", 3),
            ("laws", 2),
        ]

    def test_empty_database(self, db_session):
        stats = get_rag_stats(db_session, VectorStore(db_session))

        assert stats.total_queries == 0
        assert stats.avg_confidence == 0.0
        assert stats.top_content_types == []

    def test_database_error_returns_zeros(self):
        db = MagicMock()
        db.query.side_effect = RuntimeError("connection refused")

        stats = get_rag_stats(db, MagicMock())

        assert stats.total_queries == 0
        assert stats.recent_activity == 0
        db.rollback.assert_called_once()
