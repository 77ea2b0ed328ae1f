"""
Embedding generation for knowledge base search.

Queries and stored records are embedded with different Gemini task types.
Every failure surfaces as EmbeddingError so search can drop to text
matching; without an API key no service is created at all.
"""

from google import genai
from google.genai import types

from .config import settings
from .exceptions import EmbeddingError, EmbeddingNotConfiguredError
from .logger import logger

TASK_RETRIEVAL_QUERY = "RETRIEVAL_QUERY"
TASK_RETRIEVAL_DOCUMENT = "RETRIEVAL_DOCUMENT"


class EmbeddingService:
    """Gemini embeddings for knowledge base records and search queries."""

    def __init__(self, client: genai.Client):
        self.client = client
        self.model = settings.embedding_model
        self.dimensions = settings.embedding_dimensions
        self.max_length = settings.embedding_max_length
        logger.info(f"Embeddings ready: {self.model} ({self.dimensions} dims)")

    async def generate(self, text: str, task_type: str = TASK_RETRIEVAL_DOCUMENT) -> list[float]:
        """
        Embed one text.

        Args:
            text: Text to embed; cut to `max_length` characters
            task_type: TASK_RETRIEVAL_DOCUMENT when storing a record,
                TASK_RETRIEVAL_QUERY when embedding a search query

        Returns:
            List of floats with `dimensions` entries

        Raises:
            EmbeddingError: If the text is empty or the API call fails
        """
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text")

        text = text[: self.max_length]

        try:
            response = await self.client.aio.models.embed_content(
                model=self.model,
                contents=text,
                config=types.EmbedContentConfig(
                    task_type=task_type, output_dimensionality=self.dimensions
                ),
            )
        except Exception as e:
            logger.error(f"Error generating embedding: {str(e)}", exc_info=True)
            raise EmbeddingError(f"Failed to generate embedding: {str(e)}") from e

        if not response.embeddings or not response.embeddings[0].values:
            raise EmbeddingError("Empty embedding received")

        embedding = list(response.embeddings[0].values)
        logger.debug(f"Generated embedding: {len(embedding)} dimensions (task: {task_type})")
        return embedding

    async def test_connection(self) -> dict:
        """Embed a test string and report whether the service answered."""
        try:
            await self.generate("Test embedding generation")
            return {"status": "success", "message": "Embeddings service connected successfully"}
        except EmbeddingError as e:
            return {"status": "error", "message": e.message}


def create_embedding_service(api_key: str | None) -> EmbeddingService | None:
    """Build the embedding service, or None when no Gemini key is set."""
    if not api_key:
        logger.warning("GEMINI_API_KEY not set - vector search will use text matching")
        return None

    try:
        client = genai.Client(api_key=api_key)
        return EmbeddingService(client)
    except Exception as e:
        logger.error(f"Could not create Gemini client: {str(e)}", exc_info=True)
        return None


def require_embedding_service(service: EmbeddingService | None) -> EmbeddingService:
    """Return the service or raise the configuration error for a missing key."""
    if service is None:
        raise EmbeddingNotConfiguredError()
    return service
