"""
Vector store over the knowledge base.

Semantic search uses pgvector cosine distance on `vector_content.embedding`.
When the query cannot be embedded or the vector query fails, search falls
back to case-insensitive substring matching and marks every hit with the
TEXT_MATCH_SIMILARITY sentinel.
"""

import asyncio
import json
import uuid
from datetime import datetime, timedelta

from sqlalchemy import func, or_, text
from sqlalchemy.orm import Session

from .config import settings
from .embeddings import (
    TASK_RETRIEVAL_DOCUMENT,
    TASK_RETRIEVAL_QUERY,
    EmbeddingService,
    require_embedding_service,
)
from .exceptions import ContentNotFoundError
from .logger import logger
from .schemas import (
    ContentCreate,
    ContentMetadata,
    ContentRecord,
    ContentStats,
    ContentUpdate,
    IngestionResult,
)
from .vector_models import VectorContent

# Similarity assigned to substring matches: marks a non-semantic hit
TEXT_MATCH_SIMILARITY = 0.5


def to_content_record(row: VectorContent, similarity: float | None = None) -> ContentRecord:
    """Convert an ORM row to the API record."""
    return ContentRecord(
        id=str(row.id),
        content_id=row.content_id,
        content_type=row.content_type,
        title=row.title,
        content=row.content,
        metadata=ContentMetadata.model_validate(row.content_metadata or {}),
        similarity=similarity,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _parse_id(record_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(record_id))
    except ValueError as e:
        raise ContentNotFoundError(record_id) from e


class VectorStore:
    """Knowledge base reads and writes bound to one database session."""

    def __init__(self, db: Session, embedding_service: EmbeddingService | None = None):
        self.db = db
        self.embedding_service = embedding_service

    async def search_similar(
        self,
        query: str,
        limit: int = 10,
        threshold: float = 0.5,
        content_types: list[str] | None = None,
        metadata: dict | None = None,
    ) -> list[ContentRecord]:
        """
        Search for records semantically similar to the query.

        Args:
            query: Free-text query
            limit: Maximum results to return
            threshold: Minimum cosine similarity (0..1)
            content_types: Optional content type filter
            metadata: Optional JSON containment filter (e.g. {"location": "Kyoto"})

        Returns:
            Records ordered by descending similarity, at most `limit` long
        """
        try:
            return await self._vector_search(query, limit, threshold, content_types, metadata)
        except Exception as e:
            logger.warning(f"Vector search failed, using text search fallback: {str(e)}")
            self.db.rollback()

        try:
            return self.text_search(query, limit=limit, content_types=content_types)
        except Exception as text_error:
            logger.error(f"Text search fallback also failed: {str(text_error)}", exc_info=True)
            self.db.rollback()
            return []

    async def _vector_search(
        self,
        query: str,
        limit: int,
        threshold: float,
        content_types: list[str] | None,
        metadata: dict | None,
    ) -> list[ContentRecord]:
        service = require_embedding_service(self.embedding_service)
        query_embedding = await asyncio.wait_for(
            service.generate(query, task_type=TASK_RETRIEVAL_QUERY),
            timeout=settings.embedding_timeout,
        )

        query_preview = query[:50]
        logger.info(f"Vector search: '{query_preview}...' (limit: {limit}, threshold: {threshold})")

        filters = ""
        params = {
            "embedding": query_embedding,
            "threshold": threshold,
            "limit": limit,
        }

        if content_types:
            filters += " AND content_type = ANY(:content_types)"
            params["content_types"] = list(content_types)

        if metadata:
            filters += " AND metadata @> CAST(:metadata AS jsonb)"
            params["metadata"] = json.dumps(metadata)

        # pgvector uses <=> for cosine distance (lower = more similar)
        # We convert to similarity score: 1 - distance
        query_sql = text(f"""
            SELECT
                id,
                content_id,
                content_type,
                title,
                content,
                metadata,
                created_at,
                updated_at,
                (1 - (embedding <=> CAST(:embedding AS vector))) AS similarity
            FROM vector_content
            WHERE embedding IS NOT NULL
              AND (1 - (embedding <=> CAST(:embedding AS vector))) >= :threshold
              {filters}
            ORDER BY embedding <=> CAST(:embedding AS vector)
            LIMIT :limit
        """)

        rows = self.db.execute(query_sql, params).fetchall()
        logger.info(f"Vector search found {len(rows)} results (threshold: {threshold})")

        results = []
        for row in rows:
            results.append(
                ContentRecord(
                    id=str(row.id),
                    content_id=row.content_id,
                    content_type=row.content_type,
                    title=row.title,
                    content=row.content,
                    metadata=ContentMetadata.model_validate(row.metadata or {}),
                    similarity=float(row.similarity),
                    created_at=row.created_at,
                    updated_at=row.updated_at,
                )
            )
            logger.debug(f"  - [{row.content_type}] {row.title} (similarity: {row.similarity:.3f})")

        return results

    def text_search(
        self,
        query: str,
        limit: int,
        content_types: list[str] | None = None,
    ) -> list[ContentRecord]:
        """
        Case-insensitive substring match over title and content, newest first.

        Every hit carries TEXT_MATCH_SIMILARITY.
        """
        filters = [
            or_(
                VectorContent.title.icontains(query, autoescape=True),
                VectorContent.content.icontains(query, autoescape=True),
            )
        ]
        if content_types:
            filters.append(VectorContent.content_type.in_(content_types))

        rows = (
            self.db.query(VectorContent)
            .filter(*filters)
            .order_by(VectorContent.created_at.desc())
            .limit(limit)
            .all()
        )
        logger.info(f"Text search for '{query[:50]}' found {len(rows)} results")
        return [to_content_record(row, similarity=TEXT_MATCH_SIMILARITY) for row in rows]

    async def _embed_document(self, title: str, content: str) -> list[float] | None:
        """Embed a record body; failures leave the record without a vector."""
        try:
            service = require_embedding_service(self.embedding_service)
            return await asyncio.wait_for(
                service.generate(f"{title}\n\n{content}", task_type=TASK_RETRIEVAL_DOCUMENT),
                timeout=settings.embedding_timeout,
            )
        except Exception as e:
            logger.error(f"Error generating embedding, storing without vector: {str(e)}")
            return None

    async def store_content(self, content: ContentCreate) -> str:
        """
        Store a record, embedding it unless an embedding was supplied.

        Returns:
            The new record id
        """
        embedding = content.embedding
        if embedding is None:
            embedding = await self._embed_document(content.title, content.content)

        row = VectorContent(
            content_id=content.content_id,
            content_type=content.content_type,
            title=content.title,
            content=content.content,
            content_metadata=content.metadata.as_filter() if content.metadata else {},
            embedding=embedding,
        )
        try:
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Stored vector content: {content.content_type}/{content.title} "
            f"(embedding: {embedding is not None})"
        )
        return str(row.id)

    async def store_batch(self, contents: list[ContentCreate]) -> list[str]:
        """
        Store records in small batches to respect embedding rate limits.

        Returns:
            Ids in input order; '' for every item of a failed batch
        """
        results: list[str] = []
        batch_size = settings.vector_batch_size

        for i in range(0, len(contents), batch_size):
            batch = contents[i : i + batch_size]
            try:
                batch_ids = await asyncio.gather(*(self.store_content(c) for c in batch))
                results.extend(batch_ids)
            except Exception as e:
                logger.error(f"Error storing batch {i}-{i + len(batch)}: {str(e)}", exc_info=True)
                results.extend("" for _ in batch)

            if i + batch_size < len(contents):
                await asyncio.sleep(settings.vector_batch_delay)

        logger.info(f"Stored {sum(1 for r in results if r)}/{len(contents)} records")
        return results

    async def ingest_content(self, contents: list[ContentCreate]) -> IngestionResult:
        """
        Store a list of records and report how many made it.

        Returns:
            IngestionResult; success is False when any item was not stored
        """
        result = IngestionResult()
        logger.info(f"Starting content ingestion for {len(contents)} items...")

        try:
            stored_ids = await self.store_batch(contents)
        except Exception as e:
            logger.error(f"Error during content ingestion: {str(e)}", exc_info=True)
            result.success = False
            result.errors.append(f"Ingestion error: {str(e)}")
            return result

        result.content_ids = [record_id for record_id in stored_ids if record_id]
        result.processed = len(result.content_ids)

        if result.processed < len(contents):
            result.success = False
            result.errors.append(
                f"Only {result.processed} of {len(contents)} items were successfully stored"
            )

        logger.info(f"Content ingestion completed: {result.processed} items processed")
        return result

    async def update_content(self, record_id: str, updates: ContentUpdate) -> ContentRecord:
        """
        Apply a partial update; re-embed when the title or content changes.

        Raises:
            ContentNotFoundError: If the record does not exist
        """
        row = self.db.query(VectorContent).filter(VectorContent.id == _parse_id(record_id)).first()
        if not row:
            raise ContentNotFoundError(record_id)

        if updates.title or updates.content:
            row.embedding = await self._embed_document(
                updates.title or row.title, updates.content or row.content
            )

        if updates.content_id:
            row.content_id = updates.content_id
        if updates.content_type:
            row.content_type = updates.content_type
        if updates.title:
            row.title = updates.title
        if updates.content:
            row.content = updates.content
        if updates.metadata is not None:
            row.content_metadata = updates.metadata.as_filter()

        self.db.commit()
        self.db.refresh(row)
        logger.info(f"Updated vector content: {record_id}")
        return to_content_record(row)

    def delete_content(self, record_id: str) -> None:
        """
        Delete a record.

        Raises:
            ContentNotFoundError: If the record does not exist
        """
        row = self.db.query(VectorContent).filter(VectorContent.id == _parse_id(record_id)).first()
        if not row:
            raise ContentNotFoundError(record_id)

        self.db.delete(row)
        self.db.commit()
        logger.info(f"Deleted vector content: {record_id}")

    def clear_all_content(self) -> int:
        """Delete every knowledge base record and return how many were removed."""
        try:
            deleted = self.db.query(VectorContent).delete(synchronize_session=False)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Cleared {deleted} vector content items")
        return deleted

    def get_content_stats(self) -> ContentStats:
        """Count records overall, per type, and added in the last 7 days."""
        try:
            total = self.db.query(func.count(VectorContent.id)).scalar() or 0
            type_rows = (
                self.db.query(VectorContent.content_type, func.count(VectorContent.id))
                .group_by(VectorContent.content_type)
                .all()
            )
            week_ago = datetime.utcnow() - timedelta(days=7)
            recent = (
                self.db.query(func.count(VectorContent.id))
                .filter(VectorContent.created_at >= week_ago)
                .scalar()
                or 0
            )
            return ContentStats(
                total_content=total,
                content_types={content_type: count for content_type, count in type_rows},
                recent_content=recent,
            )
        except Exception as e:
            logger.error(f"Error getting content stats: {str(e)}", exc_info=True)
            self.db.rollback()
            return ContentStats()
