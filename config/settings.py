"""
Configuration management using pydantic-settings.
Loads environment variables and provides typed settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Literal


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Models
    embedding_model_name: str = Field(
        default="google/embeddinggemma-300m",
        description="Sentence-transformers embedding model"
    )
    reranker_model_name: str = Field(
        default="jinaai/jina-reranker-v2-base-multilingual",
        description="Cross-encoder reranking model"
    )
    model_cache_dir: str = Field(
        default="./data/model_cache",
        description="Local cache directory for downloaded model weights"
    )
    hf_token: str | None = None
    preload_models: bool = Field(
        default=False,
        description="Load embedding and reranker models at API startup"
    )

    # Remote vector backend
    vector_backend: Literal["chroma", "libsql", "none"] = Field(
        default="chroma",
        description="Remote vector-indexed backend"
    )
    chroma_host: str | None = Field(
        default=None,
        description="ChromaDB server host (local persistent client when unset)"
    )
    chroma_port: int = Field(default=8001, description="ChromaDB server port")
    chroma_persist_dir: str = Field(
        default="./data/chroma",
        description="ChromaDB persistence directory"
    )
    chroma_collection: str = Field(
        default="rag_passages",
        description="ChromaDB collection holding assistant passages"
    )
    libsql_url: str | None = Field(
        default=None,
        description="libSQL / Turso database URL"
    )
    libsql_auth_token: str | None = None
    remote_search_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        description="Timeout for a single remote vector search"
    )

    # RAG Configuration
    rag_vector_search_limit: int = Field(
        default=20,
        ge=1,
        description="Number of candidates requested from vector search"
    )
    rag_rerank_limit: int = Field(
        default=5,
        ge=1,
        description="Number of passages kept after reranking"
    )
    rag_enable_reranking: bool = Field(
        default=True,
        description="Re-score candidates with the cross-encoder"
    )
    rag_min_similarity: float = Field(
        default=0.3,
        ge=-1.0,
        le=1.0,
        description="Cosine similarity floor for retrieved candidates"
    )
    rag_context_delimiter: str = Field(
        default="\n\n---\n\n",
        description="Separator between passages in the assembled context"
    )

    # Semantic cache
    cache_enabled: bool = Field(default=True, description="Enable the semantic query cache")
    cache_similarity_threshold: float = Field(
        default=0.9,
        ge=0.0,
        le=1.0,
        description="Cosine similarity required for a cache hit"
    )
    cache_max_entries_per_assistant: int = Field(
        default=1000,
        ge=1,
        description="Cache capacity per assistant"
    )
    cache_expiration_days: int = Field(
        default=30,
        ge=1,
        description="Entries untouched for this many days are removed by maintenance"
    )
    cache_database_url: str | None = Field(
        default="sqlite:///./data/query_cache.db",
        description="Database URL for the persisted cache (in-memory when unset)"
    )
    cache_auto_maintenance: bool = Field(
        default=True,
        description="Run cache maintenance on a schedule"
    )
    cache_maintenance_interval_hours: int = Field(
        default=24,
        ge=1,
        description="Interval between scheduled cache maintenance runs"
    )

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    # Observability
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )
    log_file: str = Field(
        default="./data/logs/rag.log",
        description="Log file path"
    )
    enable_trace_logging: bool = Field(
        default=True,
        description="Write JSON trace logs to log_file"
    )

    def validate_backend(self) -> None:
        """Validate that the selected remote backend is configured."""
        if self.vector_backend == "libsql" and not self.libsql_url:
            raise ValueError("LIBSQL_URL required when VECTOR_BACKEND=libsql")


# Global settings instance
settings = Settings()
