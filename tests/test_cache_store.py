"""Tests for the SQL cache store."""

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from memory.cache_store import SQLCacheStore
from models.cache import CacheEntry
from models.passage import Passage


T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_entry(entry_id, assistant_id="asst", accessed=T0, created=T0):
    return CacheEntry(
        id=entry_id,
        assistant_id=assistant_id,
        query_vector=np.asarray([0.6, 0.8], dtype=np.float32),
        query_text=f"query {entry_id}",
        results=[Passage("doc.txt", "text", relevance_score=0.7, score_kind="cosine", metadata={"page": 2})],
        created_at=created,
        last_accessed_at=accessed,
        hit_count=0
    )


@pytest.fixture
def store(tmp_path):
    return SQLCacheStore(f"sqlite:///{tmp_path / 'cache.db'}")


def test_save_and_load(store):
    store.save(make_entry("e1"))

    [entry] = store.load_assistant("asst")

    assert entry.id == "e1"
    assert entry.query_text == "query e1"
    assert np.allclose(entry.query_vector, [0.6, 0.8])
    assert entry.results[0].metadata == {"page": 2}
    assert entry.created_at == T0
    assert entry.created_at.tzinfo is not None


def test_update_access(store):
    store.save(make_entry("e1"))
    later = T0 + timedelta(days=2)

    store.update_access("e1", later, 5)

    [entry] = store.load_assistant("asst")
    assert entry.hit_count == 5
    assert entry.last_accessed_at == later


def test_delete_expired_returns_ids(store):
    store.save(make_entry("old", accessed=T0))
    store.save(make_entry("new", accessed=T0 + timedelta(days=10)))

    removed = store.delete_expired(T0 + timedelta(days=5))

    assert removed == ["old"]
    assert [e.id for e in store.load_assistant("asst")] == ["new"]


def test_delete_and_delete_assistant(store):
    store.save(make_entry("a1", "a"))
    store.save(make_entry("a2", "a"))
    store.save(make_entry("b1", "b"))

    assert store.delete(["a1"]) == 1
    assert store.delete([]) == 0
    assert store.delete_assistant("a") == 1
    assert store.load_assistant("a") == []
    assert len(store.load_assistant("b")) == 1


def test_stats(store):
    store.save(make_entry("a1", "a", created=T0))
    store.save(make_entry("a2", "a", created=T0 + timedelta(hours=3)))
    store.save(make_entry("b1", "b", created=T0 + timedelta(hours=1)))

    stats = store.stats()

    assert stats.total_entries == 3
    assert stats.entries_by_assistant == {"a": 2, "b": 1}
    assert stats.oldest_entry == T0
    assert stats.newest_entry == T0 + timedelta(hours=3)


def test_stats_on_empty_store(store):
    stats = store.stats()

    assert stats.total_entries == 0
    assert stats.oldest_entry is None
    assert stats.to_dict()["newest_entry"] is None
