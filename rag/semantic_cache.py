"""
Semantic query cache.

Stores (query vector, results) per assistant and returns the stored results
for any later query whose embedding is close enough. The in-memory index is
authoritative; an optional CacheStore persists it.
"""

import asyncio
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
from pydantic import BaseModel, Field, ValidationError

from config import settings
from memory.cache_store import CacheStorageStats, CacheStore
from models.cache import CacheEntry
from models.errors import CacheStoreError
from models.passage import Passage
from observability import trace_logger
from rag.similarity import cosine_similarities, normalize


class CacheConfig(BaseModel):
    """Runtime-tunable cache parameters."""
    similarity_threshold: float = Field(default=0.9, ge=0.0, le=1.0)
    max_entries_per_assistant: int = Field(default=1000, ge=1)
    expiration_days: int = Field(default=30, ge=1)

    @classmethod
    def from_settings(cls) -> "CacheConfig":
        return cls(
            similarity_threshold=settings.cache_similarity_threshold,
            max_entries_per_assistant=settings.cache_max_entries_per_assistant,
            expiration_days=settings.cache_expiration_days
        )


@dataclass
class MaintenanceReport:
    removed_count: int
    storage_stats: CacheStorageStats

    def to_dict(self) -> dict:
        return {
            "removed_count": self.removed_count,
            "storage_stats": self.storage_stats.to_dict()
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SemanticCache:
    """Per-assistant nearest-neighbour cache over query embeddings."""

    def __init__(
        self,
        store: Optional[CacheStore] = None,
        config: Optional[CacheConfig] = None,
        clock: Callable[[], datetime] = None
    ):
        """
        Initialize the cache.

        Args:
            store: Persistence layer; entries live only in memory when None
            config: Threshold, capacity and expiry (from settings when None)
            clock: Returns the current UTC time
        """
        self.persistence = store
        self.config = config or CacheConfig.from_settings()
        self._clock = clock or _utcnow
        self._entries: Dict[str, Dict[str, CacheEntry]] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._access_counter = 0

    def _next_access(self) -> int:
        self._access_counter += 1
        return self._access_counter

    async def _ensure_loaded(self, assistant_id: str) -> Dict[str, CacheEntry]:
        """Hydrate an assistant's entries from the store. Caller holds the lock."""
        if assistant_id in self._entries:
            return self._entries[assistant_id]

        entries: Dict[str, CacheEntry] = {}
        if self.persistence is not None:
            for entry in await asyncio.to_thread(self.persistence.load_assistant, assistant_id):
                entries[entry.id] = entry

        self._entries[assistant_id] = entries
        return entries

    @staticmethod
    def _best_match(
        entries: List[CacheEntry],
        query_vector: np.ndarray
    ) -> Tuple[Optional[CacheEntry], float]:
        """Highest-similarity entry; the earliest wins ties."""
        dimension = len(query_vector)
        candidates = [e for e in entries if len(e.query_vector) == dimension]
        if not candidates:
            return None, 0.0

        matrix = np.asarray([e.query_vector for e in candidates], dtype=np.float32)
        similarities = cosine_similarities(query_vector, matrix)
        best = int(np.argmax(similarities))
        return candidates[best], float(similarities[best])

    async def lookup(
        self,
        assistant_id: str,
        query_vector: np.ndarray,
        query_text: str = "",
        threshold: float = None
    ) -> Optional[CacheEntry]:
        """
        Find a cached entry for a query.

        Args:
            assistant_id: Cache partition
            query_vector: Query embedding
            query_text: Logged on hits
            threshold: Minimum similarity (config value when None)

        Returns:
            Snapshot of the best entry when its similarity reaches the
            threshold, otherwise None. Store failures count as a miss.
        """
        threshold = self.config.similarity_threshold if threshold is None else threshold

        try:
            async with self._locks[assistant_id]:
                entries = await self._ensure_loaded(assistant_id)
                best, similarity = self._best_match(list(entries.values()), query_vector)

                if best is None or similarity < threshold:
                    trace_logger.cache_miss(assistant_id=assistant_id, best_similarity=similarity)
                    return None

                best.hit_count += 1
                best.last_accessed_at = self._clock()
                best.access_order = self._next_access()
                snapshot = best.snapshot()

                # Under the lock so a maintenance sweep sees the new access time
                if self.persistence is not None:
                    await self._persist_access(snapshot)
        except Exception as e:
            trace_logger.warning(
                "Cache lookup failed; treating as miss",
                assistant_id=assistant_id,
                error=f"{type(e).__name__}: {e}"
            )
            return None

        trace_logger.cache_hit(
            assistant_id=assistant_id,
            similarity=similarity,
            query=query_text,
            original_query=snapshot.query_text,
            hit_count=snapshot.hit_count
        )
        return snapshot

    async def _persist_access(self, snapshot: CacheEntry) -> None:
        """Write a hit's access time and count through to the store."""
        try:
            await asyncio.to_thread(
                self.persistence.update_access,
                snapshot.id,
                snapshot.last_accessed_at,
                snapshot.hit_count
            )
        except CacheStoreError as e:
            trace_logger.warning(
                "Failed to persist cache access",
                entry_id=snapshot.id,
                error=str(e)
            )

    async def store(
        self,
        assistant_id: str,
        query_vector: np.ndarray,
        query_text: str,
        results: List[Passage]
    ) -> Optional[CacheEntry]:
        """
        Cache the results of a query.

        Evicts the least recently accessed entries beyond the per-assistant
        capacity. Store failures are logged and leave the cache unchanged.

        Returns:
            The new entry, or None if it could not be stored
        """
        now = self._clock()
        entry = CacheEntry(
            id=str(uuid.uuid4()),
            assistant_id=assistant_id,
            query_vector=normalize(query_vector),
            query_text=query_text,
            results=list(results),
            created_at=now,
            last_accessed_at=now,
            hit_count=0,
            access_order=self._next_access()
        )

        try:
            async with self._locks[assistant_id]:
                entries = await self._ensure_loaded(assistant_id)
                if self.persistence is not None:
                    await asyncio.to_thread(self.persistence.save, entry)
                entries[entry.id] = entry
                evicted = self._evict_overflow(entries)
                if evicted and self.persistence is not None:
                    await asyncio.to_thread(self.persistence.delete, evicted)
        except Exception as e:
            trace_logger.warning(
                "Cache store failed; skipping",
                assistant_id=assistant_id,
                error=f"{type(e).__name__}: {e}"
            )
            return None

        trace_logger.cache_stored(
            assistant_id=assistant_id,
            entry_id=entry.id,
            num_results=len(entry.results)
        )
        if evicted:
            trace_logger.cache_evicted(
                assistant_id=assistant_id,
                reason="capacity",
                entry_ids=evicted
            )
        return entry.snapshot()

    def _evict_overflow(self, entries: Dict[str, CacheEntry]) -> List[str]:
        """Drop least-recently-accessed entries above capacity. Returns their ids."""
        overflow = len(entries) - self.config.max_entries_per_assistant
        if overflow <= 0:
            return []

        by_recency = sorted(
            entries.values(),
            key=lambda e: (e.last_accessed_at, e.access_order)
        )
        evicted = [e.id for e in by_recency[:overflow]]
        for entry_id in evicted:
            del entries[entry_id]
        return evicted

    async def clear_assistant_cache(self, assistant_id: str) -> int:
        """Remove every entry of an assistant. Returns the number removed."""
        async with self._locks[assistant_id]:
            removed = len(self._entries.pop(assistant_id, {}))
            if self.persistence is not None:
                persisted = await asyncio.to_thread(self.persistence.delete_assistant, assistant_id)
                removed = max(removed, persisted)

        trace_logger.info("Cleared assistant cache", assistant_id=assistant_id, removed=removed)
        return removed

    async def perform_maintenance(self) -> MaintenanceReport:
        """Remove entries not accessed within the expiry window."""
        cutoff = self._clock() - timedelta(days=self.config.expiration_days)
        removed_ids = set()

        for assistant_id in list(self._entries):
            async with self._locks[assistant_id]:
                entries = self._entries.get(assistant_id, {})
                expired = [e.id for e in entries.values() if e.last_accessed_at < cutoff]
                for entry_id in expired:
                    del entries[entry_id]
                if expired:
                    trace_logger.cache_evicted(
                        assistant_id=assistant_id,
                        reason="expired",
                        entry_ids=expired
                    )
                removed_ids.update(expired)

        if self.persistence is not None:
            persisted = set(await asyncio.to_thread(self.persistence.delete_expired, cutoff))
            removed_ids.update(persisted)

            # Assistants hydrated during the sweep may still hold rows the store just dropped
            for assistant_id in list(self._entries):
                async with self._locks[assistant_id]:
                    entries = self._entries.get(assistant_id, {})
                    for entry_id in persisted.intersection(entries):
                        del entries[entry_id]

        stats = await self.get_stats()
        trace_logger.cache_maintenance(
            removed_count=len(removed_ids),
            remaining_entries=stats.total_entries
        )
        return MaintenanceReport(removed_count=len(removed_ids), storage_stats=stats)

    async def get_stats(self) -> CacheStorageStats:
        """Entry counts per assistant and the oldest/newest creation times."""
        if self.persistence is not None:
            return await asyncio.to_thread(self.persistence.stats)

        all_entries = [e for entries in self._entries.values() for e in entries.values()]
        created = [e.created_at for e in all_entries]
        return CacheStorageStats(
            total_entries=len(all_entries),
            entries_by_assistant={
                assistant_id: len(entries)
                for assistant_id, entries in self._entries.items()
                if entries
            },
            oldest_entry=min(created) if created else None,
            newest_entry=max(created) if created else None
        )

    def update_config(self, **updates) -> CacheConfig:
        """
        Update cache parameters.

        Each field is validated on its own; an invalid value is logged and
        the current value kept. Unknown fields are ignored.
        """
        current = self.config.model_dump()
        for name, value in updates.items():
            if value is None:
                continue
            if name not in current:
                trace_logger.warning("Unknown cache setting ignored", setting=name)
                continue
            try:
                CacheConfig(**{**current, name: value})
            except ValidationError as e:
                trace_logger.warning(
                    "Invalid cache setting ignored",
                    setting=name,
                    value=value,
                    error=str(e.errors()[0].get("msg", e))
                )
                continue
            current[name] = value

        self.config = CacheConfig(**current)
        trace_logger.info("Cache configuration updated", **self.config.model_dump())
        return self.config
