"""Application settings loaded from environment variables via pydantic-settings.

Values come from (highest priority first) environment variables, then the
``.env`` file in the working directory, then the defaults below.  Field
``redis_host`` maps to ``REDIS_HOST`` and so on.

The API process and the ingestion worker read the same settings, so the
queue name, collection name and chunking parameters always agree.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from pdfchat.utils.errors import ConfigurationError


class Settings(BaseSettings):
    """pdfchat application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === OpenAI ===
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoint; empty = api.openai.com
    openai_text_model: str = "gpt-4o-mini"
    openai_embedding_model: str = "text-embedding-3-small"

    # === Job broker (Redis) ===
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    queue_name: str = "file-upload-queue"

    # === Vector store (ChromaDB) ===
    # Empty host = embedded PersistentClient rooted at chromadb_persist_dir.
    chroma_host: str = ""
    chroma_port: int = 8000
    chromadb_persist_dir: str = "./data/chromadb"
    chroma_collection: str = "pdf-docs"

    # === Uploads ===
    upload_dir: str = "uploads"
    max_upload_mb: int = 25

    # === Chunking ===
    chunk_size: int = 1000
    chunk_overlap: int = 200
    chunk_boundary_tolerance: int = 150

    # === Retrieval / answering ===
    retrieval_top_k: int = 3
    max_context_chars: int = 6000
    generation_temperature: float = 0.2
    generation_max_tokens: int = 1024

    # === Ingestion worker ===
    worker_concurrency: int = 4
    job_timeout_seconds: float = 300.0
    visibility_timeout_seconds: float = 600.0
    max_job_attempts: int = 3
    dequeue_timeout_seconds: float = 5.0
    reclaim_interval_seconds: float = 30.0
    embed_batch_size: int = 64

    # === Capability retry / deadlines ===
    capability_max_attempts: int = 3
    capability_backoff_base: float = 0.5
    capability_backoff_max: float = 8.0
    capability_timeout_seconds: float = 30.0
    query_deadline_seconds: float = 60.0

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def validate_runtime(self) -> None:
        """Fail fast on settings that would break every request or job.

        Raises
        ------
        ConfigurationError
            If the OpenAI key is missing or numeric settings are inconsistent.
        """
        if not self.openai_api_key:
            raise ConfigurationError(
                message="OPENAI_API_KEY is not set", provider_name="openai"
            )
        if self.chunk_overlap >= self.chunk_size:
            raise ConfigurationError(
                message=(
                    f"CHUNK_OVERLAP ({self.chunk_overlap}) must be smaller than "
                    f"CHUNK_SIZE ({self.chunk_size})"
                )
            )
        if self.retrieval_top_k < 1:
            raise ConfigurationError(message="RETRIEVAL_TOP_K must be at least 1")
        if self.max_context_chars < self.chunk_size:
            raise ConfigurationError(
                message="MAX_CONTEXT_CHARS must fit at least one full chunk"
            )
        if self.worker_concurrency < 1:
            raise ConfigurationError(message="WORKER_CONCURRENCY must be at least 1")
        if self.visibility_timeout_seconds <= self.job_timeout_seconds:
            raise ConfigurationError(
                message="VISIBILITY_TIMEOUT_SECONDS must exceed JOB_TIMEOUT_SECONDS"
            )
