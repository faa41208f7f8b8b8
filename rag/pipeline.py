"""
RAG query orchestration.

embed -> cache check -> retrieve -> rerank -> cache store -> context
"""

import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Literal, Optional, Sequence

from pydantic import BaseModel, Field

from config import settings
from models.passage import Passage
from observability import trace_logger
from rag.embeddings import EmbeddingEngine
from rag.model_loader import ProgressCallback
from rag.reranker import CrossEncoderReranker
from rag.retriever import VectorRetriever
from rag.semantic_cache import SemanticCache
from rag.similarity import cosine_similarity


ResponseSource = Literal["remote", "local", "empty", "cache"]


class RagQueryOptions(BaseModel):
    """Per-query knobs. Unset fields fall back to settings."""
    vector_search_limit: int = Field(default_factory=lambda: settings.rag_vector_search_limit, ge=1)
    rerank_limit: int = Field(default_factory=lambda: settings.rag_rerank_limit, ge=1)
    enable_reranking: bool = Field(default_factory=lambda: settings.rag_enable_reranking)
    min_similarity: float = Field(default_factory=lambda: settings.rag_min_similarity, ge=-1.0, le=1.0)
    enable_cache: bool = Field(default_factory=lambda: settings.cache_enabled)
    cache_similarity_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)


@dataclass
class RagQueryResponse:
    """Assembled context plus how it was produced."""
    context: str
    passages: List[Passage]
    from_cache: bool
    source: ResponseSource
    query_latency_ms: float
    candidate_count: int
    filtered_count: int
    cache_similarity: Optional[float] = None
    original_query: Optional[str] = None
    hit_count: Optional[int] = None
    trace_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "context": self.context,
            "passages": [p.to_dict() for p in self.passages],
            "from_cache": self.from_cache,
            "source": self.source,
            "query_latency_ms": self.query_latency_ms,
            "candidate_count": self.candidate_count,
            "filtered_count": self.filtered_count,
            "cache_similarity": self.cache_similarity,
            "original_query": self.original_query,
            "hit_count": self.hit_count,
            "trace_id": self.trace_id
        }


@dataclass
class CacheMetrics:
    """Running query counters and latency averages."""
    total_queries: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    hit_rate: float = 0.0
    average_query_time: float = 0.0
    average_cache_hit_time: float = 0.0
    average_full_rag_time: float = 0.0

    def record(self, from_cache: bool, duration_ms: float) -> None:
        self.average_query_time = (
            (self.average_query_time * self.total_queries + duration_ms) / (self.total_queries + 1)
        )
        self.total_queries += 1

        if from_cache:
            self.average_cache_hit_time = (
                (self.average_cache_hit_time * self.cache_hits + duration_ms) / (self.cache_hits + 1)
            )
            self.cache_hits += 1
        else:
            self.average_full_rag_time = (
                (self.average_full_rag_time * self.cache_misses + duration_ms) / (self.cache_misses + 1)
            )
            self.cache_misses += 1

        self.hit_rate = self.cache_hits / self.total_queries

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def results_to_context_string(passages: Sequence[Passage], delimiter: str = None) -> str:
    """
    Join passages into the LLM context string.

    Each block is "From {source_id}:\\n{text}"; no passages yields "".
    """
    if not passages:
        return ""
    delimiter = settings.rag_context_delimiter if delimiter is None else delimiter
    return delimiter.join(p.format_context_block() for p in passages)


class RagQueryOrchestrator:
    """Runs one query through the retrieval pipeline."""

    def __init__(
        self,
        embedding_engine: EmbeddingEngine,
        retriever: VectorRetriever,
        reranker: Optional[CrossEncoderReranker] = None,
        cache: Optional[SemanticCache] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            embedding_engine: Query embedder
            retriever: Remote-then-local retriever
            reranker: Cross-encoder; reranking is skipped when None
            cache: Semantic cache; caching is skipped when None
        """
        self.embedding_engine = embedding_engine
        self.retriever = retriever
        self.reranker = reranker
        self.cache = cache
        self.metrics = CacheMetrics()

    async def query(
        self,
        query_text: str,
        assistant_id: str,
        local_passages: Optional[Sequence[Passage]] = None,
        options: Optional[RagQueryOptions] = None,
        progress_callback: Optional[ProgressCallback] = None
    ) -> RagQueryResponse:
        """
        Answer a query with context from the assistant's knowledge base.

        Model loading failures propagate. Backend and cache failures degrade
        to fewer results.

        Args:
            query_text: User query
            assistant_id: Knowledge base to search
            local_passages: Fallback passages for this call
            options: Per-query overrides
            progress_callback: Receives model loading milestones

        Returns:
            RagQueryResponse with the context string and its passages
        """
        options = options or RagQueryOptions()
        started = time.perf_counter()

        with trace_logger.trace() as trace_id:
            stage = "embedding"
            try:
                trace_logger.pipeline_stage(stage, assistant_id)
                query_vector = await self.embedding_engine.embed(
                    query_text, "query", progress_callback
                )

                if options.enable_cache and self.cache is not None:
                    stage = "cache_check"
                    trace_logger.pipeline_stage(stage, assistant_id)
                    entry = await self.cache.lookup(
                        assistant_id,
                        query_vector,
                        query_text,
                        threshold=options.cache_similarity_threshold
                    )
                    if entry is not None:
                        return self._finish(
                            assistant_id,
                            started,
                            trace_id,
                            passages=entry.results,
                            from_cache=True,
                            source="cache",
                            candidate_count=len(entry.results),
                            cache_similarity=cosine_similarity(query_vector, entry.query_vector),
                            original_query=entry.query_text,
                            hit_count=entry.hit_count
                        )

                stage = "retrieving"
                trace_logger.pipeline_stage(stage, assistant_id)
                retrieval = await self.retriever.retrieve(
                    assistant_id,
                    query_vector,
                    top_k=options.vector_search_limit,
                    min_similarity=options.min_similarity,
                    local_passages=local_passages
                )

                stage = "reranking"
                if options.enable_reranking and self.reranker is not None and retrieval.passages:
                    trace_logger.pipeline_stage(stage, assistant_id, num_candidates=len(retrieval.passages))
                    final = await self.reranker.rerank(
                        query_text, retrieval.passages, options.rerank_limit, progress_callback
                    )
                else:
                    final = retrieval.passages[:options.rerank_limit]

                if options.enable_cache and self.cache is not None and final:
                    stage = "caching"
                    trace_logger.pipeline_stage(stage, assistant_id)
                    await self.cache.store(assistant_id, query_vector, query_text, final)

                return self._finish(
                    assistant_id,
                    started,
                    trace_id,
                    passages=final,
                    from_cache=False,
                    source=retrieval.source,
                    candidate_count=retrieval.candidate_count
                )
            except Exception as e:
                trace_logger.error_occurred(
                    error_type="query_failed",
                    error_message=str(e),
                    context={"assistant_id": assistant_id, "stage": stage}
                )
                raise

    def _finish(
        self,
        assistant_id: str,
        started: float,
        trace_id: str,
        passages: List[Passage],
        from_cache: bool,
        source: ResponseSource,
        candidate_count: int,
        cache_similarity: Optional[float] = None,
        original_query: Optional[str] = None,
        hit_count: Optional[int] = None
    ) -> RagQueryResponse:
        duration_ms = (time.perf_counter() - started) * 1000
        self.metrics.record(from_cache, duration_ms)

        trace_logger.pipeline_stage("complete", assistant_id)
        trace_logger.query_completed(
            assistant_id=assistant_id,
            from_cache=from_cache,
            source=source,
            num_results=len(passages),
            duration_ms=duration_ms
        )

        return RagQueryResponse(
            context=results_to_context_string(passages),
            passages=list(passages),
            from_cache=from_cache,
            source=source,
            query_latency_ms=duration_ms,
            candidate_count=candidate_count,
            filtered_count=len(passages),
            cache_similarity=cache_similarity,
            original_query=original_query,
            hit_count=hit_count,
            trace_id=trace_id
        )

    def get_metrics(self) -> CacheMetrics:
        return CacheMetrics(**asdict(self.metrics))

    def reset_metrics(self) -> None:
        self.metrics = CacheMetrics()
        trace_logger.info("Query metrics reset")

    async def get_cache_stats(self) -> Dict[str, Any]:
        """Performance counters plus storage statistics."""
        stats = {"performance_metrics": self.metrics.to_dict(), "storage_stats": None}
        if self.cache is not None:
            stats["storage_stats"] = (await self.cache.get_stats()).to_dict()
        return stats

    async def clear_assistant_cache(self, assistant_id: str) -> int:
        if self.cache is None:
            return 0
        return await self.cache.clear_assistant_cache(assistant_id)

    async def perform_maintenance(self):
        if self.cache is None:
            return None
        return await self.cache.perform_maintenance()

    async def warmup(self, queries: Sequence[str]) -> int:
        """
        Preload models and embed common queries.

        Failures are logged per query and do not stop the warmup.

        Returns:
            Number of queries embedded successfully
        """
        warmed = 0
        for query in queries:
            try:
                await self.embedding_engine.embed(query, "query")
                warmed += 1
            except Exception as e:
                trace_logger.warning("Warmup query failed", query=query[:100], error=str(e))
        trace_logger.info("Warmup complete", warmed=warmed, requested=len(queries))
        return warmed
