"""
Pydantic schemas for API requests and responses.
"""

from pydantic import BaseModel, Field
from typing import Dict, Any, Optional, List
from datetime import datetime, timezone

from models.passage import Passage


class PassageIn(BaseModel):
    """A passage supplied by the caller, optionally with its vector."""
    source_id: str = Field(..., description="Source document identifier")
    text: str = Field(..., min_length=1, description="Passage text")
    vector: Optional[List[float]] = Field(None, description="Precomputed document embedding")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_passage(self) -> Passage:
        return Passage(
            source_id=self.source_id,
            text=self.text,
            vector=self.vector,
            metadata=self.metadata
        )


class PassageOut(BaseModel):
    """A passage in a query response."""
    source_id: str
    text: str
    relevance_score: Optional[float] = None
    score_kind: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class RagQueryRequest(BaseModel):
    """Query against an assistant's knowledge base."""
    query: str = Field(..., min_length=1, description="User query")
    assistant_id: str = Field(..., min_length=1, description="Knowledge base to search")
    local_passages: Optional[List[PassageIn]] = Field(
        None, description="Fallback passages used when the remote backend has none"
    )
    vector_search_limit: Optional[int] = Field(None, ge=1)
    rerank_limit: Optional[int] = Field(None, ge=1)
    enable_reranking: Optional[bool] = None
    min_similarity: Optional[float] = Field(None, ge=-1.0, le=1.0)
    enable_cache: Optional[bool] = None
    cache_similarity_threshold: Optional[float] = Field(None, ge=0.0, le=1.0)

    def option_overrides(self) -> Dict[str, Any]:
        """Options the caller set explicitly."""
        fields = [
            "vector_search_limit", "rerank_limit", "enable_reranking",
            "min_similarity", "enable_cache", "cache_similarity_threshold"
        ]
        return {name: getattr(self, name) for name in fields if getattr(self, name) is not None}


class RagQueryResponseModel(BaseModel):
    """Assembled context and retrieval metadata."""
    context: str
    passages: List[PassageOut]
    from_cache: bool
    source: str
    query_latency_ms: float
    candidate_count: int
    filtered_count: int
    cache_similarity: Optional[float] = None
    original_query: Optional[str] = None
    hit_count: Optional[int] = None
    trace_id: Optional[str] = None


class LocalPassagesRequest(BaseModel):
    """Passages to add to an assistant's local fallback store."""
    passages: List[PassageIn] = Field(..., min_length=1)


class LocalPassagesResponse(BaseModel):
    assistant_id: str
    added: int
    total: int


class CacheConfigUpdate(BaseModel):
    """Partial cache configuration update. Invalid values are ignored."""
    similarity_threshold: Optional[float] = None
    max_entries_per_assistant: Optional[int] = None
    expiration_days: Optional[int] = None


class CacheConfigResponse(BaseModel):
    similarity_threshold: float
    max_entries_per_assistant: int
    expiration_days: int


class CacheStatsResponse(BaseModel):
    """Query metrics and cache storage statistics."""
    performance_metrics: Dict[str, Any]
    storage_stats: Optional[Dict[str, Any]] = None


class MaintenanceResponse(BaseModel):
    removed_count: int
    storage_stats: Dict[str, Any]


class ClearCacheResponse(BaseModel):
    assistant_id: str
    removed_count: int


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(default="healthy")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: str = Field(default="1.0.0")
    embedding_model_loaded: bool = False
    reranker_model_loaded: bool = False
