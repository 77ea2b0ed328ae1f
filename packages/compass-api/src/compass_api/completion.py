"""
Chat completion client for the Groq OpenAI-compatible API.

Follows the same factory pattern as embeddings.py:
- create_completion_client() builds the client from settings
- complete() raises CompletionNotConfiguredError for missing or rejected
  credentials and CompletionError for everything transient
"""

import asyncio

from groq import AsyncGroq, AuthenticationError, PermissionDeniedError

from .config import settings
from .exceptions import CompletionError, CompletionNotConfiguredError
from .logger import logger
from .schemas import ChatMessage

EMPTY_COMPLETION_RESPONSE = "I apologize, but I encountered an error processing your request."

PERSONA_PROMPT = """You are CulturalCompass AI, a helpful and knowledgeable travel assistant with deep expertise in cultural intelligence.

Key Guidelines:
- Provide accurate, respectful, and practical advice about travel destinations and cultural experiences
- Focus on cultural sensitivity and authentic experiences
- Be conversational, engaging, and supportive
- Prioritize local customs, etiquette, and cultural nuances
- Include practical tips for respectful cultural interaction
- When discussing destinations, emphasize cultural experiences over tourist attractions

Respond in a warm, helpful tone that makes travelers feel confident about exploring new cultures respectfully."""


def build_persona_prompt(location: str | None = None) -> str:
    """Return the persona system prompt, naming the location when known."""
    if not location:
        return PERSONA_PROMPT
    return f"{PERSONA_PROMPT}\n\nContext: Location: {location}"


class CompletionClient:
    """Thin async wrapper around Groq chat completions."""

    def __init__(
        self,
        client: AsyncGroq | None,
        model: str | None = None,
        timeout: float | None = None,
    ):
        self.client = client
        self.model = model or settings.completion_model
        self.timeout = timeout or settings.completion_timeout

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    async def complete(
        self,
        messages: list[ChatMessage],
        *,
        location: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """
        Generate a reply for the given conversation.

        Args:
            messages: Ordered messages; the persona system prompt is prepended
            location: Optional destination named in the persona prompt
            temperature: Sampling temperature (default from settings)
            max_tokens: Completion token cap (default from settings)

        Returns:
            Generated text

        Raises:
            CompletionNotConfiguredError: No API key, or the key was rejected
            CompletionError: Timeout, connection or provider failure
        """
        if self.client is None:
            raise CompletionNotConfiguredError("Groq API key is not configured")

        payload = [{"role": "system", "content": build_persona_prompt(location)}]
        payload.extend({"role": m.role, "content": m.content} for m in messages)

        logger.info(f"Requesting completion from {self.model} ({len(payload)} messages)")

        try:
            completion = await asyncio.wait_for(
                self.client.chat.completions.create(
                    messages=payload,
                    model=self.model,
                    temperature=(
                        settings.completion_temperature if temperature is None else temperature
                    ),
                    max_tokens=max_tokens or settings.completion_max_tokens,
                ),
                timeout=self.timeout,
            )
        except (AuthenticationError, PermissionDeniedError) as e:
            logger.error(f"Completion service rejected credentials: {str(e)}")
            raise CompletionNotConfiguredError() from e
        except asyncio.TimeoutError as e:
            logger.error(f"Completion timed out after {self.timeout}s")
            raise CompletionError(f"Completion timed out after {self.timeout}s") from e
        except Exception as e:
            logger.error(f"Error generating chat response: {str(e)}", exc_info=True)
            raise CompletionError() from e

        if not completion.choices or not completion.choices[0].message.content:
            logger.warning("Completion returned no content")
            return EMPTY_COMPLETION_RESPONSE

        return completion.choices[0].message.content

    async def test_connection(self) -> dict:
        """Send a one-line test message and report the outcome."""
        if not self.is_configured:
            return {"status": "demo", "message": "Completion service not configured"}
        try:
            await self.complete(
                [ChatMessage(role="user", content="Hello, this is a test message.")],
                max_tokens=10,
            )
            return {"status": "success", "message": "Completion service connected successfully"}
        except (CompletionError, CompletionNotConfiguredError) as e:
            return {"status": "error", "message": e.message}


def create_completion_client(api_key: str | None) -> CompletionClient:
    """
    Create completion client from API key.

    Without a key the client is still returned; its calls raise
    CompletionNotConfiguredError so callers can tell misconfiguration apart
    from transient failures.

    Args:
        api_key: Groq API key

    Returns:
        CompletionClient instance
    """
    if not api_key:
        logger.warning("GROQ_API_KEY not set - chat completion will be disabled")
        return CompletionClient(None)

    client = AsyncGroq(api_key=api_key)
    logger.info(f"Groq completion client initialized (model: {settings.completion_model})")
    return CompletionClient(client)
