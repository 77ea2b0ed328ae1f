"""Custom exceptions for the knowledge API."""


class CompassError(Exception):
    """Base exception for knowledge API errors."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ConfigurationError(CompassError):
    """Raised when an external service is missing credentials or rejects them."""

    def __init__(self, message: str = "Service is not configured"):
        super().__init__(message, status_code=503)


class EmbeddingNotConfiguredError(ConfigurationError):
    """Raised when no embedding API key is available."""

    def __init__(self, message: str = "Gemini API key not configured for embeddings"):
        super().__init__(message)


class CompletionNotConfiguredError(ConfigurationError):
    """Raised when the chat completion service is not configured."""

    def __init__(self, message: str = "Groq AI service is not properly configured"):
        super().__init__(message)


class EmbeddingError(CompassError):
    """Raised when embedding generation fails."""


class CompletionError(CompassError):
    """Raised when a chat completion request fails for a transient reason."""

    def __init__(self, message: str = "Failed to generate response. Please try again."):
        super().__init__(message, status_code=502)


class ContentNotFoundError(CompassError):
    """Raised when a knowledge base record does not exist."""

    def __init__(self, content_id: str):
        super().__init__(f"Content not found: {content_id}", status_code=404)
