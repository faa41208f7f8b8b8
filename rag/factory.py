"""
Builds the default retrieval stack from settings.
"""

from typing import Optional

from config import settings
from memory.cache_store import SQLCacheStore
from memory.libsql_backend import LibSQLVectorBackend
from memory.local_store import LocalPassageStore
from memory.vector_backend import ChromaVectorBackend, RemoteVectorBackend
from observability import trace_logger
from rag.embeddings import EmbeddingEngine
from rag.pipeline import RagQueryOrchestrator
from rag.reranker import CrossEncoderReranker
from rag.retriever import VectorRetriever
from rag.semantic_cache import SemanticCache


def build_remote_backend() -> Optional[RemoteVectorBackend]:
    """Remote backend selected by VECTOR_BACKEND, or None."""
    settings.validate_backend()

    if settings.vector_backend == "chroma":
        return ChromaVectorBackend()
    if settings.vector_backend == "libsql":
        return LibSQLVectorBackend()
    return None


def build_orchestrator(
    local_store: Optional[LocalPassageStore] = None,
    remote_backend: Optional[RemoteVectorBackend] = None
) -> RagQueryOrchestrator:
    """Wire embedding, retrieval, reranking and caching from settings."""
    remote_backend = remote_backend if remote_backend is not None else build_remote_backend()

    cache = None
    if settings.cache_enabled:
        store = SQLCacheStore() if settings.cache_database_url else None
        cache = SemanticCache(store=store)

    orchestrator = RagQueryOrchestrator(
        embedding_engine=EmbeddingEngine(),
        retriever=VectorRetriever(
            remote_backend=remote_backend,
            local_store=local_store or LocalPassageStore()
        ),
        reranker=CrossEncoderReranker(),
        cache=cache
    )

    trace_logger.info(
        "Retrieval stack initialized",
        vector_backend=settings.vector_backend,
        cache_enabled=cache is not None,
        cache_persisted=cache is not None and cache.persistence is not None
    )
    return orchestrator
