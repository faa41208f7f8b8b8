"""RAG retrieval core components."""

from models.errors import (
    RetrievalCoreError, ModelLoadError, EmbeddingError,
    RerankError, RemoteBackendError, CacheStoreError
)
from rag.model_loader import LazyModelLoader
from rag.embeddings import EmbeddingEngine
from rag.retriever import VectorRetriever, RemoteThenLocal
from rag.reranker import CrossEncoderReranker
from rag.semantic_cache import SemanticCache, CacheConfig, MaintenanceReport
from rag.pipeline import (
    RagQueryOrchestrator, RagQueryOptions, RagQueryResponse,
    CacheMetrics, results_to_context_string
)

__all__ = [
    "RetrievalCoreError", "ModelLoadError", "EmbeddingError",
    "RerankError", "RemoteBackendError", "CacheStoreError",
    "LazyModelLoader", "EmbeddingEngine", "VectorRetriever", "RemoteThenLocal",
    "CrossEncoderReranker", "SemanticCache", "CacheConfig", "MaintenanceReport",
    "RagQueryOrchestrator", "RagQueryOptions", "RagQueryResponse",
    "CacheMetrics", "results_to_context_string"
]
