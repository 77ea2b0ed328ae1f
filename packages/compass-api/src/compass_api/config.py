from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


def get_env_files() -> tuple[Path, ...]:
    """Env files to load, in override order: repo-level .env, then package .env.local."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / "docker-compose.yml").exists():
            root_env = parent / ".env"
            break
    else:
        root_env = Path.cwd() / ".env"

    local_env = Path(__file__).resolve().parent.parent.parent / ".env.local"

    files = [f for f in [root_env, local_env] if f.exists()]
    return tuple(files) if files else (".env",)


class Settings(BaseSettings):
    # Required
    database_url: str

    # Optional with defaults (missing keys disable the matching service)
    gemini_api_key: str | None = None
    groq_api_key: str | None = None
    log_level: str = "INFO"

    # Embeddings
    embedding_model: str = "gemini-embedding-001"
    embedding_dimensions: int = 768
    embedding_max_length: int = 8000
    embedding_timeout: float = 15.0

    # Chat completion
    completion_model: str = "llama-3.1-8b-instant"
    completion_temperature: float = 0.7
    completion_max_tokens: int = 1000
    completion_timeout: float = 60.0

    # Retrieval (similarity floors are tuning constants, not calibrated values)
    rag_default_max_context: int = 5
    rag_similarity_threshold: float = 0.4
    rag_history_limit: int = 8
    location_similarity_threshold: float = 0.3
    location_context_limit: int = 2
    search_timeout: float = 20.0

    # Vector store
    vector_batch_size: int = 3
    vector_batch_delay: float = 0.2

    # HTTP
    cors_origins: str = "http://localhost:3000"

    model_config = SettingsConfigDict(
        env_file=get_env_files(),
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
