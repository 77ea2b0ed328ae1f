"""Tests for the knowledge base store on SQLite (text search paths)."""

import uuid
from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from compass_api.exceptions import ContentNotFoundError
from compass_api.schemas import ContentCreate, ContentMetadata, ContentUpdate
from compass_api.vector_models import VectorContent
from compass_api.vector_store import TEXT_MATCH_SIMILARITY, VectorStore


def content(content_id, title, body, content_type="customs", location="Kyoto"):
    return ContentCreate(
        content_id=content_id,
        content_type=content_type,
        title=title,
        content=body,
        metadata=ContentMetadata(location=location, tags=["test"]),
    )


@pytest.fixture
def store(db_session):
    return VectorStore(db_session)


@pytest_asyncio.fixture
async def seeded_store(store):
    await store.store_content(
        content("kyoto-temples", "Temple etiquette", "Bow at the torii gate.")
    )
    await store.store_content(
        content("kyoto-gion", "Gion manners", "Do not stop maiko on the street.")
    )
    await store.store_content(
        content(
            "marrakech-souk",
            "Bargaining in the souks",
            "Start at a third of the asking price.",
            location="Marrakech",
        )
    )
    return store


class TestStoreContent:
    @pytest.mark.asyncio
    async def test_store_without_embedding_service(self, store, db_session):
        record_id = await store.store_content(
            content("kyoto-temples", "Temple etiquette", "Bow at the torii gate.")
        )

        row = db_session.query(VectorContent).one()
        assert str(row.id) == record_id
        assert row.embedding is None
        assert row.content_metadata == {"location": "Kyoto", "tags": ["test"]}

    @pytest.mark.asyncio
    async def test_store_embeds_title_and_body(self, db_session, mock_embedding_service):
        store = VectorStore(db_session, mock_embedding_service)

        await store.store_content(content("c1", "Title", "Body"))

        mock_embedding_service.generate.assert_awaited_once_with(
            "Title\n\nBody", task_type="RETRIEVAL_DOCUMENT"
        )
        assert db_session.query(VectorContent).one().embedding is not None

    @pytest.mark.asyncio
    async def test_embedding_failure_stores_without_vector(
        self, db_session, mock_embedding_service
    ):
        mock_embedding_service.generate.side_effect = RuntimeError("quota")
        store = VectorStore(db_session, mock_embedding_service)

        await store.store_content(content("c1", "Title", "Body"))

        assert db_session.query(VectorContent).one().embedding is None

    @pytest.mark.asyncio
    async def test_store_batch(self, store, db_session):
        records = [content(f"c{i}", f"Title {i}", f"Body {i}") for i in range(4)]

        ids = await store.store_batch(records)

        assert len(ids) == 4
        assert all(ids)
        assert db_session.query(VectorContent).count() == 4

    @pytest.mark.asyncio
    async def test_failed_batch_yields_blank_ids(self, store, monkeypatch):
        original = store.store_content

        async def flaky(item):
            if item.content_id == "c4":
                raise RuntimeError("insert failed")
            return await original(item)

        monkeypatch.setattr(store, "store_content", flaky)
        records = [content(f"c{i}", f"Title {i}", f"Body {i}") for i in range(5)]

        ids = await store.store_batch(records)

        assert all(ids[:3])
        assert ids[3:] == ["", ""]


class TestSearch:
    @pytest.mark.asyncio
    async def test_text_search_is_case_insensitive(self, seeded_store):
        results = seeded_store.text_search("TEMPLE", limit=5)

        assert [r.title for r in results] == ["Temple etiquette"]
        assert results[0].similarity == TEXT_MATCH_SIMILARITY

    @pytest.mark.asyncio
    async def test_text_search_matches_body_and_filters_type(self, seeded_store):
        assert seeded_store.text_search("maiko", limit=5)[0].title == "Gion manners"
        assert seeded_store.text_search("maiko", limit=5, content_types=["laws"]) == []

    @pytest.mark.asyncio
    async def test_text_search_treats_wildcards_literally(self, seeded_store):
        assert seeded_store.text_search("%", limit=5) == []

    @pytest.mark.asyncio
    async def test_text_search_newest_first(self, seeded_store, db_session):
        old = db_session.query(VectorContent).filter_by(content_id="kyoto-temples").one()
        old.created_at = datetime.utcnow() - timedelta(days=30)
        db_session.commit()

        results = seeded_store.text_search("e", limit=2)

        assert len(results) == 2
        assert "Temple etiquette" not in [r.title for r in results]

    @pytest.mark.asyncio
    async def test_search_similar_without_embeddings_uses_text(self, seeded_store):
        results = await seeded_store.search_similar("souks", limit=5, threshold=0.4)

        assert [r.content_id for r in results] == ["marrakech-souk"]
        assert results[0].metadata.location == "Marrakech"

    @pytest.mark.asyncio
    async def test_search_similar_falls_back_when_vector_query_fails(
        self, seeded_store, mock_embedding_service
    ):
        # SQLite has no pgvector operators, so the vector query itself fails
        seeded_store.embedding_service = mock_embedding_service

        results = await seeded_store.search_similar("torii", limit=5)

        mock_embedding_service.generate.assert_awaited_once_with(
            "torii", task_type="RETRIEVAL_QUERY"
        )
        assert [r.content_id for r in results] == ["kyoto-temples"]


class TestUpdateDelete:
    @pytest.mark.asyncio
    async def test_update_fields(self, seeded_store, db_session):
        row = db_session.query(VectorContent).filter_by(content_id="kyoto-gion").one()

        updated = await seeded_store.update_content(
            str(row.id),
            ContentUpdate(
                content="Gion alleys are private.", metadata=ContentMetadata(region="Kansai")
            ),
        )

        assert updated.content == "Gion alleys are private."
        assert updated.title == "Gion manners"
        assert updated.metadata.region == "Kansai"
        assert updated.metadata.location is None

    @pytest.mark.asyncio
    async def test_update_reembeds_changed_text(
        self, seeded_store, db_session, mock_embedding_service
    ):
        seeded_store.embedding_service = mock_embedding_service
        row = db_session.query(VectorContent).filter_by(content_id="kyoto-gion").one()

        await seeded_store.update_content(str(row.id), ContentUpdate(title="Gion etiquette"))

        mock_embedding_service.generate.assert_awaited_once_with(
            "Gion etiquette\n\nDo not stop maiko on the street.", task_type="RETRIEVAL_DOCUMENT"
        )

    @pytest.mark.asyncio
    async def test_type_only_update_skips_reembedding(
        self, seeded_store, db_session, mock_embedding_service
    ):
        seeded_store.embedding_service = mock_embedding_service
        row = db_session.query(VectorContent).filter_by(content_id="kyoto-gion").one()

        await seeded_store.update_content(str(row.id), ContentUpdate(content_type="etiquette"))

        mock_embedding_service.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update_missing(self, store):
        with pytest.raises(ContentNotFoundError):
            await store.update_content(str(uuid.uuid4()), ContentUpdate(title="x"))

    @pytest.mark.asyncio
    async def test_delete(self, seeded_store, db_session):
        row = db_session.query(VectorContent).filter_by(content_id="kyoto-gion").one()

        seeded_store.delete_content(str(row.id))

        assert db_session.query(VectorContent).count() == 2

    def test_delete_invalid_id(self, store):
        with pytest.raises(ContentNotFoundError) as exc_info:
            store.delete_content("not-a-uuid")

        assert exc_info.value.status_code == 404


class TestContentStats:
    @pytest.mark.asyncio
    async def test_counts(self, seeded_store, db_session):
        await seeded_store.store_content(
            content("kyoto-law", "Drone rules", "Drones need permits.", content_type="laws")
        )
        old = db_session.query(VectorContent).filter_by(content_id="kyoto-law").one()
        old.created_at = datetime.utcnow() - timedelta(days=10)
        db_session.commit()

        stats = seeded_store.get_content_stats()

        assert stats.total_content == 4
        assert stats.content_types == {"customs": 3, "laws": 1}
        assert stats.recent_content == 3

    def test_empty(self, store):
        stats = store.get_content_stats()

        assert stats.total_content == 0
        assert stats.content_types == {}


class TestBulkOperations:
    @pytest.mark.asyncio
    async def test_ingest_reports_stored_ids(self, store, db_session):
        records = [content(f"c{i}", f"Title {i}", f"Body {i}") for i in range(4)]

        result = await store.ingest_content(records)

        assert result.success is True
        assert result.processed == 4
        assert result.errors == []
        assert len(result.content_ids) == 4
        assert db_session.query(VectorContent).count() == 4

    @pytest.mark.asyncio
    async def test_ingest_partial_failure(self, store, monkeypatch):
        original_store = store.store_content

        async def flaky(item):
            if item.content_id == "c4":
                raise RuntimeError("insert failed")
            return await original_store(item)

        monkeypatch.setattr(store, "store_content", flaky)
        records = [content(f"c{i}", f"Title {i}", f"Body {i}") for i in range(5)]

        result = await store.ingest_content(records)

        assert result.success is False
        assert result.processed == 3
        assert len(result.content_ids) == 3
        assert result.errors == ["Only 3 of 5 items were successfully stored"]

    @pytest.mark.asyncio
    async def test_clear_all_content(self, seeded_store, db_session):
        assert seeded_store.clear_all_content() == 3
        assert db_session.query(VectorContent).count() == 0

    def test_clear_empty_store(self, store):
        assert store.clear_all_content() == 0
