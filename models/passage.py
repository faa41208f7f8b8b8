"""
Passage objects for RAG retrieval.
Represents knowledge-base chunks with vectors, scores and provenance.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, Any, List, Optional, Literal


ScoreKind = Literal["cosine", "rerank"]
RetrievalSource = Literal["remote", "local", "empty"]


@dataclass(frozen=True)
class Passage:
    """One chunk of a source document."""

    source_id: str  # Source document identifier (e.g. file name)
    text: str  # The chunk text
    vector: Optional[List[float]] = None  # Present for locally stored passages
    relevance_score: Optional[float] = None
    score_kind: Optional[ScoreKind] = None  # Which stage produced relevance_score
    metadata: Dict[str, Any] = field(default_factory=dict)

    def with_score(self, score: float, kind: ScoreKind) -> "Passage":
        """Return a copy carrying a new score; the original is left untouched."""
        return replace(self, relevance_score=float(score), score_kind=kind)

    def to_dict(self, include_vector: bool = False) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = {
            "source_id": self.source_id,
            "text": self.text,
            "relevance_score": self.relevance_score,
            "score_kind": self.score_kind,
            "metadata": self.metadata
        }
        if include_vector:
            data["vector"] = list(self.vector) if self.vector is not None else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Passage":
        vector = data.get("vector")
        return cls(
            source_id=data["source_id"],
            text=data["text"],
            vector=[float(v) for v in vector] if vector is not None else None,
            relevance_score=data.get("relevance_score"),
            score_kind=data.get("score_kind"),
            metadata=data.get("metadata") or {}
        )

    def format_context_block(self) -> str:
        """Format as a block of the LLM context string."""
        return f"From {self.source_id}:\n{self.text}"


@dataclass
class RetrievalResult:
    """Outcome of one retrieval call. Transient, never persisted."""

    passages: List[Passage]
    source: RetrievalSource
    query_latency_ms: float
    candidate_count: int
    filtered_count: int

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "passages": [p.to_dict() for p in self.passages],
            "source": self.source,
            "query_latency_ms": self.query_latency_ms,
            "candidate_count": self.candidate_count,
            "filtered_count": self.filtered_count
        }
