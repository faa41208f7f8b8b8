"""
Semantic cache models.
CacheEntry is the in-memory record; QueryCacheRecord is its SQL row.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List

import numpy as np
from sqlalchemy import Column, String, Integer, DateTime, Text, JSON
from sqlalchemy.orm import declarative_base

from models.passage import Passage

Base = declarative_base()


def ensure_utc(value: datetime) -> datetime:
    """SQLite drops tzinfo; treat naive timestamps as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class CacheEntry:
    """A cached query vector and the passages it produced."""

    id: str
    assistant_id: str
    query_vector: np.ndarray
    query_text: str
    results: List[Passage]
    created_at: datetime
    last_accessed_at: datetime
    hit_count: int = 0
    access_order: int = field(default=0, compare=False)  # Tie-breaker for equal timestamps

    def snapshot(self) -> "CacheEntry":
        """Copy safe to hand out while the original keeps being updated."""
        return replace(self, results=list(self.results))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "assistant_id": self.assistant_id,
            "query_text": self.query_text,
            "results": [p.to_dict() for p in self.results],
            "created_at": self.created_at.isoformat(),
            "last_accessed_at": self.last_accessed_at.isoformat(),
            "hit_count": self.hit_count
        }


class QueryCacheRecord(Base):
    """Persisted semantic cache entry."""
    __tablename__ = "query_cache"

    id = Column(String(36), primary_key=True)
    assistant_id = Column(String(255), nullable=False, index=True)
    query_text = Column(Text, nullable=False)
    query_embedding = Column(JSON, nullable=False)
    results = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    last_accessed_at = Column(DateTime(timezone=True), nullable=False, index=True)
    hit_count = Column(Integer, default=0, nullable=False)

    @classmethod
    def from_entry(cls, entry: CacheEntry) -> "QueryCacheRecord":
        return cls(
            id=entry.id,
            assistant_id=entry.assistant_id,
            query_text=entry.query_text,
            query_embedding=[float(v) for v in entry.query_vector],
            results=[p.to_dict(include_vector=True) for p in entry.results],
            created_at=entry.created_at,
            last_accessed_at=entry.last_accessed_at,
            hit_count=entry.hit_count
        )

    def to_entry(self) -> CacheEntry:
        return CacheEntry(
            id=self.id,
            assistant_id=self.assistant_id,
            query_vector=np.asarray(self.query_embedding, dtype=np.float32),
            query_text=self.query_text,
            results=[Passage.from_dict(p) for p in self.results],
            created_at=ensure_utc(self.created_at),
            last_accessed_at=ensure_utc(self.last_accessed_at),
            hit_count=self.hit_count or 0
        )
