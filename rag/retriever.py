"""
Vector retrieval with remote-then-local fallback.
Queries the remote backend first and scores local passages only when the
remote side has nothing.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from config import settings
from memory.local_store import LocalPassageStore
from memory.vector_backend import RemoteHit, RemoteVectorBackend
from models.passage import Passage, RetrievalResult, RetrievalSource
from observability import trace_logger
from rag.similarity import cosine_similarities


@dataclass
class StrategyOutcome:
    """Candidates produced by one fallback strategy, before the similarity floor."""
    source: RetrievalSource
    candidates: List[Passage] = field(default_factory=list)
    candidate_count: int = 0


class RemoteThenLocal:
    """Remote backend first; local brute-force scoring when it returns nothing."""

    def __init__(
        self,
        remote_backend: Optional[RemoteVectorBackend] = None,
        local_store: Optional[LocalPassageStore] = None,
        timeout_seconds: float = None
    ):
        self.remote_backend = remote_backend
        self.local_store = local_store
        self.timeout_seconds = timeout_seconds or settings.remote_search_timeout_seconds

    async def run(
        self,
        assistant_id: str,
        query_vector: np.ndarray,
        top_k: int,
        local_passages: Optional[Sequence[Passage]] = None
    ) -> StrategyOutcome:
        hits = await self._search_remote(assistant_id, query_vector, top_k)
        if hits:
            # Stable, so equal similarities keep backend order
            ordered = sorted(hits, key=lambda h: h.similarity, reverse=True)[:top_k]
            return StrategyOutcome(
                source="remote",
                candidates=[
                    Passage(
                        source_id=hit.source_id,
                        text=hit.text,
                        relevance_score=float(hit.similarity),
                        score_kind="cosine"
                    )
                    for hit in ordered
                ],
                candidate_count=len(hits)
            )

        if local_passages is None and self.local_store is not None:
            local_passages = self.local_store.get_passages(assistant_id)

        if local_passages:
            scored = self._score_local(query_vector, list(local_passages))
            ordered = sorted(scored, key=lambda p: p.relevance_score, reverse=True)
            return StrategyOutcome(
                source="local",
                candidates=ordered[:top_k],
                candidate_count=len(scored)
            )

        return StrategyOutcome(source="empty")

    async def _search_remote(
        self,
        assistant_id: str,
        query_vector: np.ndarray,
        top_k: int
    ) -> List[RemoteHit]:
        """Remote search. Errors and timeouts mean zero rows."""
        if self.remote_backend is None:
            return []

        try:
            return await asyncio.wait_for(
                self.remote_backend.search(assistant_id, query_vector, top_k),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            trace_logger.warning(
                "Remote vector search timed out",
                backend=self.remote_backend.name,
                assistant_id=assistant_id,
                timeout_seconds=self.timeout_seconds
            )
        except Exception as e:
            trace_logger.error_occurred(
                error_type="remote_search_error",
                error_message=str(e),
                context={"backend": self.remote_backend.name, "assistant_id": assistant_id}
            )
        return []

    @staticmethod
    def _score_local(query_vector: np.ndarray, passages: List[Passage]) -> List[Passage]:
        """Cosine-score passages. Missing or mismatched vectors score 0."""
        dimension = len(query_vector)
        scores = np.zeros(len(passages), dtype=np.float64)

        indexed = [
            i for i, p in enumerate(passages)
            if p.vector is not None and len(p.vector) == dimension
        ]
        if indexed:
            matrix = np.asarray([passages[i].vector for i in indexed], dtype=np.float32)
            scores[indexed] = cosine_similarities(query_vector, matrix)

        return [p.with_score(float(s), "cosine") for p, s in zip(passages, scores)]


class VectorRetriever:
    """Retrieves candidate passages for a query vector."""

    def __init__(
        self,
        remote_backend: Optional[RemoteVectorBackend] = None,
        local_store: Optional[LocalPassageStore] = None,
        strategy: Optional[RemoteThenLocal] = None,
        min_similarity: float = None
    ):
        """
        Initialize retriever.

        Args:
            remote_backend: Remote vector store (skipped when None)
            local_store: Fallback passages with precomputed vectors
            strategy: Fallback strategy; built from the two stores when None
            min_similarity: Default similarity floor
        """
        self.strategy = strategy or RemoteThenLocal(remote_backend, local_store)
        self.min_similarity = (
            min_similarity if min_similarity is not None else settings.rag_min_similarity
        )

    async def retrieve(
        self,
        assistant_id: str,
        query_vector: np.ndarray,
        top_k: int = None,
        min_similarity: float = None,
        local_passages: Optional[Sequence[Passage]] = None
    ) -> RetrievalResult:
        """
        Retrieve passages above the similarity floor.

        Args:
            assistant_id: Knowledge base to search
            query_vector: Unit-length query embedding
            top_k: Maximum candidates
            min_similarity: Floor; only scores strictly above it survive
            local_passages: Overrides the local store for this call

        Returns:
            RetrievalResult tagged with the branch that produced it
        """
        top_k = top_k or settings.rag_vector_search_limit
        floor = min_similarity if min_similarity is not None else self.min_similarity
        started = time.perf_counter()

        outcome = await self.strategy.run(assistant_id, query_vector, top_k, local_passages)
        passages = [p for p in outcome.candidates if p.relevance_score > floor]

        result = RetrievalResult(
            passages=passages,
            source=outcome.source,
            query_latency_ms=(time.perf_counter() - started) * 1000,
            candidate_count=outcome.candidate_count,
            filtered_count=len(passages)
        )

        trace_logger.retrieval_performed(
            assistant_id=assistant_id,
            source=result.source,
            sources=[p.to_dict() for p in passages],
            top_k=top_k,
            candidate_count=result.candidate_count,
            min_similarity=floor
        )
        return result
